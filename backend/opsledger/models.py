# backend/opsledger/models.py
"""
Single import point that registers every ORM table on Base.metadata.
"""

from .apps.audit import models as audit_models  # noqa: F401
from .apps.finance import models as finance_models  # noqa: F401
from .apps.inventory import models as inventory_models  # noqa: F401

__all__ = [
    "audit_models",
    "finance_models",
    "inventory_models",
]
