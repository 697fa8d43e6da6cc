"""Exception hierarchy for the cart fee engine.

All engine exceptions inherit from CartFeesException, enabling:
- Consistent error handling in checkout handlers
- Structured error payloads with machine-readable codes
- Carrying the failing rule id out of a pass

Usage:
    from sardis_cart_fees.exceptions import (
        CartFeesException,
        FeeRuleEvaluationError,
    )

    outcome = await engine.recalculate(ctx, cart)
    if outcome.error is not None:
        report(outcome.error.to_dict())

All exceptions have:
- error_code: Machine-readable error code (e.g., "RULE_EVALUATION_FAILED")
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to a response payload
"""
from __future__ import annotations

from typing import Any, Optional


class CartFeesException(Exception):
    """Base exception for all cart fee engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "CART_FEES_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a response payload."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class FeeConfigurationError(CartFeesException):
    """Invalid fee engine configuration."""

    error_code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details=details)


class FeeSignError(CartFeesException):
    """A fee amount whose sign does not match its kind."""

    error_code = "FEE_SIGN_INVALID"

    def __init__(
        self,
        name: str,
        kind: str,
        amount: Any,
    ) -> None:
        super().__init__(
            f"Fee '{name}' of kind {kind} cannot have amount {amount}",
            details={"name": name, "kind": kind, "amount": str(amount)},
        )


class FeeRuleEvaluationError(CartFeesException):
    """A rule raised while a pass was being evaluated.

    The original exception is chained as ``__cause__``.
    """

    error_code = "RULE_EVALUATION_FAILED"

    def __init__(
        self,
        rule_id: str,
        phase: str,
        reason: str,
    ) -> None:
        self.rule_id = rule_id
        self.phase = phase
        super().__init__(
            f"{phase} rule '{rule_id}' failed: {reason}",
            details={"rule_id": rule_id, "phase": phase},
        )


class SessionContextNotFound(CartFeesException):
    """No fee context is held for the session."""

    error_code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(
            f"Fee context for session '{session_id}' not found",
            details={"session_id": session_id},
        )


__all__ = [
    "CartFeesException",
    "FeeConfigurationError",
    "FeeSignError",
    "FeeRuleEvaluationError",
    "SessionContextNotFound",
]
