# backend/opsledger/__init__.py
"""
opsledger: stock movement ledger and automatic financial postings.

Model classes live in opsledger/apps/*/models.py; import the app packages
(or opsledger.models) so Base.metadata sees every table.
"""
