"""
Admin session gate.

Independent from the customer session: its own credential record, its own
``adminAuth`` flag. The gate is re-evaluated from storage on every check and
never cached, because the admin credential can be cleared at any time by a
failed token refresh.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..api.storefront_client import ApiRequest
from ..core.events import ADMIN_SESSION_ENDED, EventBus
from ..services.store import PersistentStore
from ..utils.exceptions import APIError
from ..utils.logger import get_logger
from . import tokens
from .credentials import CredentialManager
from .results import ErrorKind, OperationResult

logger = get_logger(__name__)

ADMIN_FLAG_KEY = "adminAuth"


class AdminState(str, Enum):
    LOGGED_OUT = "LoggedOut"
    LOGGED_IN = "LoggedIn"


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    redirect_to: Optional[str] = None
    reason: Optional[str] = None


class AdminGate:
    def __init__(
        self,
        api,
        credentials: CredentialManager,
        store: PersistentStore,
        events: EventBus,
        login_path: str = "/admin-login",
    ):
        self.api = api
        self.credentials = credentials
        self.store = store
        self.events = events
        self.login_path = login_path
        self._login_pending = False
        # Bumped by logout and session end; a login answer from an older epoch is dropped
        self._epoch = 0
        self._unsubscribe = events.subscribe(ADMIN_SESSION_ENDED, self._on_session_ended)

    @property
    def state(self) -> AdminState:
        return AdminState.LOGGED_IN if self.guard().allowed else AdminState.LOGGED_OUT

    def close(self) -> None:
        self._unsubscribe()

    def _flag_set(self) -> bool:
        return self.store.get_json(ADMIN_FLAG_KEY) is True

    def guard(self, view: str = "/admin") -> GuardDecision:
        """Decide whether ``view`` may render. Call on every navigation into the admin area."""
        if not self._flag_set():
            return GuardDecision(False, self.login_path, "admin flag missing")
        credential = self.credentials.current_credential()
        if credential is None:
            return GuardDecision(False, self.login_path, "admin token missing")
        if tokens.is_expired(credential.access_token, self.credentials.leeway_seconds):
            return GuardDecision(False, self.login_path, "admin token expired")
        return GuardDecision(True)

    def is_logged_in(self) -> bool:
        return self.guard().allowed

    async def login(self, email: str, password: str) -> OperationResult:
        """Password login for administrators (no OTP)."""
        email = (email or "").strip()
        if self._login_pending:
            return OperationResult.failure(ErrorKind.INVALID_STATE, "Login already in progress", self.state.value)
        if not email or not password:
            return OperationResult.failure(ErrorKind.VALIDATION, "Email and password are required", self.state.value)

        epoch = self._epoch
        self._login_pending = True
        try:
            credential = await asyncio.to_thread(self.api.admin_login, email, password)
        except APIError as e:
            if epoch != self._epoch:
                return self._stale()
            logger.warning("Admin login failed", error=str(e))
            return OperationResult.from_exception(e, state=self.state.value)
        finally:
            if epoch == self._epoch:
                self._login_pending = False

        if epoch != self._epoch:
            return self._stale()

        if credential.user.role not in (None, "admin"):
            logger.warning("Admin login returned non-admin user", user_id=credential.user.id)
            return OperationResult.failure(ErrorKind.BACKEND_REJECTED, "Account is not an administrator", self.state.value)

        # Token first, flag second: a reader never sees the flag without a token
        self.credentials.establish(credential)
        self.store.set_json(ADMIN_FLAG_KEY, True)
        logger.info("Admin logged in", user_id=credential.user.id)
        return OperationResult.success(credential.user, state=AdminState.LOGGED_IN.value)

    def logout(self) -> OperationResult:
        self._epoch += 1
        self._login_pending = False
        self.store.remove(ADMIN_FLAG_KEY)
        self.credentials.clear()
        logger.info("Admin logged out")
        self.events.emit(ADMIN_SESSION_ENDED, reason="logout")
        return OperationResult.success(state=AdminState.LOGGED_OUT.value)

    async def send(self, request: ApiRequest) -> OperationResult:
        """Authenticated admin request; refused up front when the gate is closed."""
        decision = self.guard()
        if not decision.allowed:
            return OperationResult.failure(ErrorKind.AUTH_EXPIRED, decision.reason, AdminState.LOGGED_OUT.value)
        return await self.credentials.send(request)

    def _on_session_ended(self, reason: str = "", **_) -> None:
        if reason == "logout":
            return
        self._epoch += 1
        self._login_pending = False
        self.store.remove(ADMIN_FLAG_KEY)

    def _stale(self) -> OperationResult:
        logger.info("Discarding stale admin login response")
        return OperationResult.failure(
            ErrorKind.STALE_RESPONSE,
            "Response arrived after the admin session moved on",
            state=self.state.value,
        )
