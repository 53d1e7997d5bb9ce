"""Error hierarchy for the document lifecycle."""

from __future__ import annotations

from typing import Dict, List, Optional


class DocumentValidationError(ValueError):
    """Input rejected before it reaches the monetary engine or the store."""

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        fields = ", ".join(err["field"] for err in errors) or "input"
        super().__init__(f"Invalid document input: {fields}")


class DocumentError(RuntimeError):
    """Base class for domain rule violations."""

    code = "document_error"


class DocumentNotFoundError(DocumentError):
    code = "not_found"

    def __init__(self, kind: str, document_id: str):
        self.kind = kind
        self.document_id = document_id
        super().__init__(f"{kind} {document_id} not found")


class InvalidTransitionError(DocumentError):
    code = "invalid_transition"

    def __init__(self, kind: str, current: str, action: str, target: Optional[str] = None):
        self.kind = kind
        self.current = current
        self.action = action
        self.target = target
        requested = target or action
        super().__init__(f"{kind} cannot go from {current} to {requested}")


class DocumentLockedError(DocumentError):
    code = "document_locked"


class ArchiveNotAllowedError(DocumentError):
    code = "archive_not_allowed"


class QuoteNotAcceptedError(DocumentError):
    code = "quote_not_accepted"


class QuoteAlreadyConvertedError(DocumentError):
    code = "quote_already_converted"


class QuotaExceededError(DocumentError):
    code = "quota_exceeded"

    def __init__(self, resource: str, limit: int, plan: str):
        self.resource = resource
        self.limit = limit
        self.plan = plan
        super().__init__(f"Plan {plan} allows {limit} {resource}")


class PlanFeatureError(DocumentError):
    code = "plan_feature_missing"


class NotSubmittedError(DocumentError):
    code = "not_submitted"


__all__ = [
    "ArchiveNotAllowedError",
    "DocumentError",
    "DocumentLockedError",
    "DocumentNotFoundError",
    "DocumentValidationError",
    "InvalidTransitionError",
    "NotSubmittedError",
    "PlanFeatureError",
    "QuotaExceededError",
    "QuoteAlreadyConvertedError",
    "QuoteNotAcceptedError",
]
