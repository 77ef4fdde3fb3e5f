"""
Finance module.

Append-only ledger of postings derived from operational events, plus the
read-side aggregations over it.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
