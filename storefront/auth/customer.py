"""
Customer authentication via email OTP.

    ANONYMOUS --request_otp--> OTP_REQUESTED --verify_otp--> OTP_VERIFYING
    OTP_VERIFYING --wrong code--> OTP_REQUESTED
    OTP_VERIFYING --accepted--> AUTHENTICATED --logout--> ANONYMOUS
    OTP_REQUESTED/OTP_VERIFYING --too many attempts / expired / cancel--> ANONYMOUS

Backend calls run off the event loop. Every call captures the current epoch;
cancel, logout, session end and new challenges bump it, and a response that
comes back under an older epoch is dropped instead of applied.
"""

import asyncio
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..api.storefront_client import ApiRequest
from ..core.events import EventBus, SESSION_ENDED
from ..models.session import OtpChallenge, SessionCredential, UserProfile
from ..utils.exceptions import APIError, TransientNetworkFailure
from ..utils.logger import get_logger
from .credentials import CredentialManager
from .results import ErrorKind, OperationResult

logger = get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class AuthState(str, Enum):
    ANONYMOUS = "Anonymous"
    OTP_REQUESTED = "OtpRequested"
    OTP_VERIFYING = "OtpVerifying"
    AUTHENTICATED = "Authenticated"


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


class CustomerAuth:
    """OTP login state machine for storefront customers"""

    def __init__(
        self,
        api,
        credentials: CredentialManager,
        events: EventBus,
        max_attempts: Optional[int] = 5,
        otp_ttl_minutes: int = 10,
    ):
        self.api = api
        self.credentials = credentials
        self.events = events
        self.max_attempts = max_attempts
        self.otp_ttl_minutes = otp_ttl_minutes

        self._challenge: Optional[OtpChallenge] = None
        self._epoch = 0
        self._request_pending = False
        self.last_error: Optional[str] = None

        # Restore, not transition: a stored credential means we are signed in
        self._state = (
            AuthState.AUTHENTICATED
            if credentials.current_credential() is not None
            else AuthState.ANONYMOUS
        )
        self._unsubscribe = events.subscribe(SESSION_ENDED, self._on_session_ended)

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def challenge(self) -> Optional[OtpChallenge]:
        return self._challenge

    @property
    def is_pending(self) -> bool:
        return self._request_pending or self._state == AuthState.OTP_VERIFYING

    @property
    def user(self) -> Optional[UserProfile]:
        credential = self.credentials.current_credential()
        return credential.user if credential else None

    def close(self) -> None:
        self._unsubscribe()

    def _fail(self, kind: ErrorKind, error: str) -> OperationResult:
        self.last_error = error
        return OperationResult.failure(kind, error, state=self._state.value)

    def _ok(self, data=None) -> OperationResult:
        self.last_error = None
        return OperationResult.success(data, state=self._state.value)

    def _reset_to_anonymous(self) -> None:
        self._challenge = None
        self._request_pending = False
        self._state = AuthState.ANONYMOUS
        self._epoch += 1

    async def request_otp(self, email: str) -> OperationResult:
        """Ask the backend to email a one-time code to ``email``."""
        email = (email or "").strip()
        if self._state != AuthState.ANONYMOUS or self._request_pending:
            return self._fail(ErrorKind.INVALID_STATE, f"Cannot request a code while {self._state.value}")
        if not is_valid_email(email):
            return self._fail(ErrorKind.VALIDATION, "Valid email address is required")

        epoch = self._epoch
        self._request_pending = True
        try:
            data = await asyncio.to_thread(self.api.send_otp, email)
        except APIError as e:
            if epoch != self._epoch:
                return self._stale("request_otp")
            self._request_pending = False
            logger.warning("OTP request failed", error=str(e), transient=isinstance(e, TransientNetworkFailure))
            result = OperationResult.from_exception(e)
            return self._fail(result.kind, str(e))

        if epoch != self._epoch:
            return self._stale("request_otp")
        self._request_pending = False

        if isinstance(data, dict) and data.get("challengeAccepted") is False:
            return self._fail(ErrorKind.BACKEND_REJECTED, "OTP request was not accepted")

        self._challenge = OtpChallenge(email=email, requested_at=datetime.now(timezone.utc))
        self._state = AuthState.OTP_REQUESTED
        logger.info("OTP requested")
        return self._ok({"email": email})

    async def verify_otp(self, email: str, code: str, name: Optional[str] = None) -> OperationResult:
        """Submit the code for the outstanding challenge."""
        challenge = self._challenge
        if (
            self._state not in (AuthState.OTP_REQUESTED, AuthState.OTP_VERIFYING)
            or challenge is None
            or not challenge.matches(email)
        ):
            return self._fail(ErrorKind.CHALLENGE_MISMATCH, "No outstanding OTP challenge for this email")
        if self._state == AuthState.OTP_VERIFYING:
            return self._fail(ErrorKind.INVALID_STATE, "Verification already in progress")

        code = (code or "").strip()
        if not code:
            return self._fail(ErrorKind.VALIDATION, "OTP code is required")

        if challenge.is_expired(self.otp_ttl_minutes):
            self._reset_to_anonymous()
            logger.info("OTP challenge expired")
            return self._fail(ErrorKind.CHALLENGE_MISMATCH, "OTP has expired. Please request a new OTP.")

        epoch = self._epoch
        self._state = AuthState.OTP_VERIFYING
        try:
            credential: SessionCredential = await asyncio.to_thread(
                self.api.verify_otp, challenge.email, code, name
            )
        except TransientNetworkFailure as e:
            if epoch != self._epoch:
                return self._stale("verify_otp")
            self._state = AuthState.OTP_REQUESTED
            return self._fail(ErrorKind.TRANSIENT_NETWORK, str(e))
        except APIError as e:
            if epoch != self._epoch:
                return self._stale("verify_otp")
            return self._rejected_code(challenge, str(e))

        if epoch != self._epoch:
            return self._stale("verify_otp")

        self._challenge = None
        self.credentials.establish(credential)
        self._state = AuthState.AUTHENTICATED
        logger.info("Customer authenticated", user_id=credential.user.id)
        return self._ok(credential.user)

    def _rejected_code(self, challenge: OtpChallenge, error: str) -> OperationResult:
        challenge.attempts += 1
        if self.max_attempts is not None and challenge.attempts >= self.max_attempts:
            self._reset_to_anonymous()
            logger.warning("OTP attempts exhausted", attempts=challenge.attempts)
            return self._fail(ErrorKind.BACKEND_REJECTED, "Too many failed attempts. Please request a new OTP.")
        self._state = AuthState.OTP_REQUESTED
        logger.info("OTP rejected", attempts=challenge.attempts)
        return self._fail(ErrorKind.BACKEND_REJECTED, error or "Invalid OTP")

    def cancel(self) -> OperationResult:
        """Abandon an outstanding challenge or in-flight request."""
        if self._state == AuthState.AUTHENTICATED:
            return self._fail(ErrorKind.INVALID_STATE, "Already signed in")
        self._reset_to_anonymous()
        return self._ok()

    async def logout(self) -> OperationResult:
        """
        End the session locally, then ask the backend to revoke it.

        Local state is cleared before the backend call, so the revoke can
        neither delay nor undo the logout. Its failure is only logged.
        """
        if self._state != AuthState.AUTHENTICATED:
            return self._fail(ErrorKind.INVALID_STATE, "Not signed in")
        revoke = self.credentials.attach_auth(ApiRequest("POST", "/auth/logout"))
        self.credentials.clear()
        self._reset_to_anonymous()
        logger.info("Customer logged out")
        self.events.emit(SESSION_ENDED, reason="logout")

        try:
            await asyncio.to_thread(self.api.execute, revoke)
        except APIError as e:
            logger.warning("Backend logout failed", error=str(e))
        return self._ok()

    async def fetch_profile(self) -> OperationResult:
        """Reload the profile from the backend and refresh the stored snapshot."""
        return await self._profile_call(ApiRequest("GET", "/auth/profile"))

    async def update_profile(self, name: str) -> OperationResult:
        name = (name or "").strip()
        if not name:
            return self._fail(ErrorKind.VALIDATION, "Name is required")
        return await self._profile_call(ApiRequest("PUT", "/auth/profile", json={"name": name}))

    async def _profile_call(self, request: ApiRequest) -> OperationResult:
        if self._state != AuthState.AUTHENTICATED:
            return self._fail(ErrorKind.INVALID_STATE, "Not signed in")

        epoch = self._epoch
        result = await self.credentials.send(request)
        if not result.ok:
            self.last_error = result.error
            return OperationResult.failure(result.kind, result.error, state=self._state.value)
        if epoch != self._epoch:
            return self._stale(request.path)

        payload = result.data.get("user", result.data) if isinstance(result.data, dict) else None
        try:
            user = UserProfile.model_validate(payload)
        except ValueError:
            return self._fail(ErrorKind.BACKEND_REJECTED, "Malformed profile response")
        self.credentials.update_user(user)
        return self._ok(user)

    def _on_session_ended(self, reason: str = "", **_) -> None:
        if reason == "logout":
            return
        if self._state == AuthState.AUTHENTICATED:
            logger.info("Session ended externally", reason=reason)
            self._reset_to_anonymous()

    def _stale(self, operation: str) -> OperationResult:
        logger.info("Discarding stale response", operation=operation)
        return OperationResult.failure(
            ErrorKind.STALE_RESPONSE,
            "Response arrived after the session moved on",
            state=self._state.value,
        )
