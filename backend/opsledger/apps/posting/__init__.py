"""
Posting module.

Turns operational events into finance ledger entries without coupling their
transactions to the primary write.
"""

from .router import router  # noqa: F401
