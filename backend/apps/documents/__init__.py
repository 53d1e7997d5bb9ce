"""Documents app module.

Quotes, invoices and clients: monetary engine, lifecycle service and the
FastAPI router for API v1.
"""

from .api import router as documents_router  # re-export for app integration
from .service import DocumentService

__all__ = [
    "DocumentService",
    "documents_router",
]
