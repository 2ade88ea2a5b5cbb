"""
Infrastructure module: store handle and request correlation.
"""

from shared.infrastructure.db import Store, StoreUnavailable
from shared.infrastructure.correlation import (
    CorrelationIdMiddleware,
    CorrelationIdFilter,
    get_request_id,
)

__all__ = [
    # db
    "Store",
    "StoreUnavailable",
    # correlation
    "CorrelationIdMiddleware",
    "CorrelationIdFilter",
    "get_request_id",
]
