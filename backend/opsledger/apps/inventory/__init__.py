"""
Inventory module.

Append-only stock movement ledger; an item's balance is the fold of its movements.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
