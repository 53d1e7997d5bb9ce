"""Transmission app module: PDP submission, status refresh and email delivery."""

from .api import router as transmission_router
from .service import TransmissionError, TransmissionService

__all__ = [
    "TransmissionError",
    "TransmissionService",
    "transmission_router",
]
