"""Error taxonomy for checkout reconciliation."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class CheckoutErrorKind(str, Enum):
    """Closed set of failure categories produced by the reconciliation flow."""

    VALIDATION = "validation"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"


@dataclass(eq=False)
class CheckoutError(Exception):
    """Base error carrying a human readable detail string."""

    detail: str
    kind: CheckoutErrorKind = field(default=CheckoutErrorKind.TRANSIENT)

    def __post_init__(self) -> None:
        super().__init__(self.detail)

    @property
    def retryable(self) -> bool:
        """Validation failures cannot be repaired by trying again."""

        return self.kind != CheckoutErrorKind.VALIDATION


@dataclass(eq=False)
class SessionValidationError(CheckoutError):
    """Raised when redirect parameters cannot form a payment session."""

    kind: CheckoutErrorKind = field(default=CheckoutErrorKind.VALIDATION)


@dataclass(eq=False)
class TransientActivationError(CheckoutError):
    """Network or collaborator-reported activation failure."""

    kind: CheckoutErrorKind = field(default=CheckoutErrorKind.TRANSIENT)


@dataclass(eq=False)
class ActivationTimeoutError(CheckoutError):
    """The activation call did not resolve before its deadline."""

    detail: str = "Timeout"
    kind: CheckoutErrorKind = field(default=CheckoutErrorKind.TIMEOUT)


__all__ = [
    "ActivationTimeoutError",
    "CheckoutError",
    "CheckoutErrorKind",
    "SessionValidationError",
    "TransientActivationError",
]
