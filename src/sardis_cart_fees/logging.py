"""
Logging utilities for the cart fee engine with customer data masking.

Pass-level records carry the session and customer they belong to. Customer
PII (emails, billing address fields, card data, tokens) never reaches a log
line unmasked.

Usage:
    from sardis_cart_fees.logging import get_logger

    logger = get_logger(__name__)

    with logger.context(operation="recalculate", session_id="sess_1"):
        logger.info("Pass committed", ledger_version=3)
"""
from __future__ import annotations

import json
import logging
import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from sardis_cart_fees.config import CartFeeSettings, load_settings

MASK_PATTERN = "***MASKED***"

SENSITIVE_FIELDS = frozenset({
    "customer_email",
    "email",
    "phone",
    "card_number",
    "cvv",
    "cvc",
    "payment_token",
    "api_key",
})

SENSITIVE_PREFIXES = ("billing_", "shipping_address", "card_")

MAX_LOG_MESSAGE_LENGTH = 4096


# =============================================================================
# Sensitive Data Masking
# =============================================================================

def is_sensitive_key(key: str) -> bool:
    """Check if a key name indicates customer PII or a secret.

    Args:
        key: The key name to check

    Returns:
        True if the value under this key must be masked
    """
    key_lower = key.lower().replace("-", "_")
    if key_lower in SENSITIVE_FIELDS:
        return True
    if key_lower.startswith(SENSITIVE_PREFIXES):
        return True
    return any(s in key_lower for s in ("secret", "password", "token"))


def mask_sensitive_data(
    data: Any,
    additional_fields: Optional[Sequence[str]] = None,
    mask_pattern: str = MASK_PATTERN,
    _depth: int = 0,
    _max_depth: int = 10,
) -> Any:
    """Recursively mask sensitive values in a data structure.

    Args:
        data: The data structure to mask (dict, list, or scalar)
        additional_fields: Additional field names to mask
        mask_pattern: Pattern to replace sensitive values with

    Returns:
        Copy of data with sensitive values masked
    """
    if _depth > _max_depth:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if is_sensitive_key(str(key)) or (
                additional_fields and key in additional_fields
            ):
                result[key] = mask_pattern
            else:
                result[key] = mask_sensitive_data(
                    value, additional_fields, mask_pattern, _depth + 1, _max_depth
                )
        return result

    if isinstance(data, (list, tuple)):
        return type(data)(
            mask_sensitive_data(
                item, additional_fields, mask_pattern, _depth + 1, _max_depth
            )
            for item in data
        )

    if isinstance(data, str):
        return _mask_inline_patterns(data)

    return data


_EMAIL_RE = re.compile(r"\b[\w.+-]+@[\w-]+\.[\w.-]+\b")
_CARD_RE = re.compile(r"\b(?:\d[ -]?){12,15}(\d{4})\b")


def _mask_inline_patterns(text: str) -> str:
    """Mask email addresses and card numbers embedded in free text."""
    if len(text) > MAX_LOG_MESSAGE_LENGTH:
        text = text[:MAX_LOG_MESSAGE_LENGTH] + "...[truncated]"
    text = _EMAIL_RE.sub("***@***", text)
    return _CARD_RE.sub(r"****\1", text)


# =============================================================================
# Structured Logging
# =============================================================================

@dataclass
class PassContext:
    """Context for one engine operation on one session."""

    operation: str = ""
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    session_id: Optional[str] = None
    customer_id: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    extra: Dict[str, Any] = field(default_factory=dict)

    def elapsed_ms(self) -> float:
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "request_id": self.request_id,
            "operation": self.operation,
            "elapsed_ms": self.elapsed_ms(),
        }
        if self.session_id:
            result["session_id"] = self.session_id
        if self.customer_id:
            result["customer_id"] = self.customer_id
        if self.extra:
            result.update(mask_sensitive_data(self.extra))
        return result


# One stack per asyncio task; overlapping sessions never see each other's context.
_context_stack: ContextVar[Tuple[PassContext, ...]] = ContextVar(
    "cart_fees_log_context", default=()
)


class StructuredLogger:
    """Logger wrapper that adds pass context and masking.

    Usage:
        logger = StructuredLogger(__name__)
        with logger.context(operation="recalculate", session_id="sess_1"):
            logger.info("Discount phase done", discount_total="54.50")
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def current_context(self) -> Optional[PassContext]:
        stack = _context_stack.get()
        return stack[-1] if stack else None

    @contextmanager
    def context(
        self,
        operation: str,
        session_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **extra: Any,
    ) -> Iterator[PassContext]:
        """Attach session context to every record logged inside the block."""
        ctx = PassContext(
            operation=operation,
            request_id=request_id or str(uuid.uuid4()),
            session_id=session_id,
            customer_id=customer_id,
            extra=extra,
        )
        token = _context_stack.set(_context_stack.get() + (ctx,))
        try:
            self.debug(f"Starting {operation}")
            yield ctx
            self.debug(f"Completed {operation}", elapsed_ms=ctx.elapsed_ms())
        except Exception as e:
            self.error(
                f"Failed {operation}: {type(e).__name__}",
                elapsed_ms=ctx.elapsed_ms(),
                error=str(e),
            )
            raise
        finally:
            _context_stack.reset(token)

    def _build_extra(self, **kwargs: Any) -> Dict[str, Any]:
        extra = mask_sensitive_data(kwargs)
        if self.current_context:
            extra.update(self.current_context.to_dict())
        return extra

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, extra={"data": self._build_extra(**kwargs)})

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, extra={"data": self._build_extra(**kwargs)})

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, extra={"data": self._build_extra(**kwargs)})

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, extra={"data": self._build_extra(**kwargs)})

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at error level with the active traceback."""
        self._logger.exception(message, extra={"data": self._build_extra(**kwargs)})


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given name."""
    return StructuredLogger(name)


# =============================================================================
# Formatting
# =============================================================================

class JsonFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        data = getattr(record, "data", None)
        if data:
            log_data["data"] = data
        return json.dumps(log_data, default=str)


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure root logging for a host process.

    Args:
        level: Logging level (number or name)
        json_format: Whether to use JSON formatting on the console
        log_file: Optional file path; file output is always JSON
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    if json_format:
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def setup_logging(settings: Optional[CartFeeSettings] = None) -> None:
    """Configure logging from the engine settings (``log_level``, ``log_json``)."""
    settings = settings or load_settings()
    configure_logging(settings.log_level, json_format=settings.log_json)


__all__ = [
    "MASK_PATTERN",
    "mask_sensitive_data",
    "is_sensitive_key",
    "get_logger",
    "StructuredLogger",
    "PassContext",
    "JsonFormatter",
    "configure_logging",
    "setup_logging",
]
