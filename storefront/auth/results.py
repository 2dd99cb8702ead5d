"""Result values returned to presentation code instead of raised exceptions"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..utils.exceptions import (
    APIError,
    InvalidRefreshToken,
    TransientNetworkFailure,
)


class ErrorKind(str, Enum):
    VALIDATION = "ValidationError"
    CHALLENGE_MISMATCH = "ChallengeMismatch"
    BACKEND_REJECTED = "BackendRejected"
    TRANSIENT_NETWORK = "TransientNetworkFailure"
    AUTH_EXPIRED = "AuthExpired"
    INVALID_STATE = "InvalidState"
    STALE_RESPONSE = "StaleResponse"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSIENT_NETWORK, ErrorKind.BACKEND_REJECTED)


@dataclass(frozen=True)
class OperationResult:
    ok: bool
    data: Any = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    state: Optional[str] = None

    @classmethod
    def success(cls, data: Any = None, state: Optional[str] = None) -> "OperationResult":
        return cls(ok=True, data=data, state=state)

    @classmethod
    def failure(cls, kind: ErrorKind, error: str, state: Optional[str] = None) -> "OperationResult":
        return cls(ok=False, error=error, kind=kind, state=state)

    @classmethod
    def from_exception(cls, exc: APIError, state: Optional[str] = None) -> "OperationResult":
        if isinstance(exc, TransientNetworkFailure):
            kind = ErrorKind.TRANSIENT_NETWORK
        elif isinstance(exc, InvalidRefreshToken):
            kind = ErrorKind.AUTH_EXPIRED
        else:
            kind = ErrorKind.BACKEND_REJECTED
        return cls.failure(kind, str(exc), state=state)
