"""JSON structured logging with mandatory fields and PII redaction."""
import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from backend.core.config import settings

_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
_company_id: ContextVar[Optional[str]] = ContextVar("company_id", default=None)

_RESERVED_ATTRS = frozenset(
    (
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "message", "taskName",
    )
)


class JSONFormatter(logging.Formatter):
    """JSON formatter with mandatory fields and PII redaction."""

    def __init__(self):
        super().__init__()
        # PII patterns
        self.iban_pattern = re.compile(r'\b([A-Z]{2}\d{2}[A-Z0-9]{10,30})\b')
        self.email_pattern = re.compile(r'(\b\S+@\S+\.\S+\b)')
        self.phone_pattern = re.compile(r'(\+\d[\d \-/]{6,}|\b0\d(?:[ .\-]?\d{2}){4}\b)')

    def _redact_pii(self, text: str) -> str:
        """Redact PII from text."""
        if not isinstance(text, str):
            return text

        text = self.iban_pattern.sub(self._mask_iban, text)
        text = self.email_pattern.sub(self._mask_email, text)
        text = self.phone_pattern.sub(self._mask_phone, text)
        return text

    def _mask_iban(self, match) -> str:
        """Mask IBAN: show first 2 chars, mask the rest."""
        iban = match.group(1)
        return iban[:2] + "*" * (len(iban) - 2)

    def _mask_email(self, match) -> str:
        """Mask email: show first char of user, keep domain."""
        email = match.group(1)
        if "@" not in email:
            return email
        user, domain = email.split("@", 1)
        if len(user) <= 1:
            masked_user = "*"
        else:
            masked_user = user[0] + "*" * (len(user) - 1)
        return f"{masked_user}@{domain}"

    def _mask_phone(self, match) -> str:
        """Mask phone: show first 2 chars, mask the rest."""
        phone = match.group(1)
        if len(phone) <= 2:
            return "*" * len(phone)
        return phone[:2] + "*" * (len(phone) - 2)

    def format(self, record):
        """Format log record as JSON with mandatory fields and PII redaction."""
        trace_id = _trace_id.get() or 'unknown'
        company_id = _company_id.get() or 'unknown'

        log_entry = {
            'trace_id': trace_id,
            'company_id': company_id,
            'level': record.levelname.lower(),
            'logger': record.name,
            'msg': self._redact_pii(record.getMessage()),
            'ts_utc': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        }

        if record.exc_info:
            log_entry['exc_info'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            if isinstance(value, str):
                value = self._redact_pii(value)
            log_entry[key] = value

        return json.dumps(log_entry, default=str)


def set_trace_id(trace_id: Optional[str]) -> None:
    """Set trace ID for the current request context."""
    _trace_id.set(trace_id)


def set_company_id(company_id: Optional[str]) -> None:
    """Set company ID for the current request context."""
    _company_id.set(company_id)


def init_logging() -> None:
    """Initialize JSON logging on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get logger with JSON formatting."""
    return logging.getLogger(name)
