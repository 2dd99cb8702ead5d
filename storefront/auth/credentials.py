"""
Credential lifecycle: persistence, request decoration and bounded refresh.

One manager exists per trust boundary (customer, admin). Each owns a single
storage key holding the whole credential record, so readers either see a
complete credential or nothing.

Refresh policy: a 401 triggers exactly one refresh and, if that succeeds,
exactly one retry of the original request. Concurrent requests that hit 401
each run their own bounded cycle.
"""

import asyncio
from typing import Optional

from pydantic import ValidationError

from ..api.storefront_client import ApiRequest
from ..core.events import (
    ADMIN_SESSION_ENDED,
    ADMIN_SESSION_ESTABLISHED,
    SESSION_ENDED,
    SESSION_ESTABLISHED,
    EventBus,
)
from ..models.session import SessionCredential, TokenPair, UserProfile
from ..services.store import PersistentStore
from ..utils.exceptions import (
    APIError,
    InvalidRefreshToken,
    TransientNetworkFailure,
    UnauthorizedError,
)
from ..utils.logger import get_logger
from . import tokens
from .results import ErrorKind, OperationResult

logger = get_logger(__name__)

CUSTOMER_SESSION_KEY = "session"
ADMIN_SESSION_KEY = "adminSession"


class CredentialManager:
    """Owns one persisted Session Credential and the refresh-then-retry cycle"""

    def __init__(
        self,
        store: PersistentStore,
        api,
        events: EventBus,
        storage_key: str = CUSTOMER_SESSION_KEY,
        scope: str = "customer",
        established_event: str = SESSION_ESTABLISHED,
        ended_event: str = SESSION_ENDED,
        leeway_seconds: int = 0,
    ):
        self.store = store
        self.api = api
        self.events = events
        self.storage_key = storage_key
        self.scope = scope
        self.established_event = established_event
        self.ended_event = ended_event
        self.leeway_seconds = leeway_seconds

    def establish(self, credential: SessionCredential) -> None:
        """Persist the full credential as one record and announce the session."""
        self._write(credential)
        logger.info("Session established", scope=self.scope, user_id=credential.user.id)
        self.events.emit(self.established_event, user=credential.user)

    def current_credential(self) -> Optional[SessionCredential]:
        """Read and validate the stored credential; partial or corrupt records read as absent."""
        record = self.store.get_json(self.storage_key)
        if record is None:
            return None
        try:
            return SessionCredential.model_validate(record)
        except ValidationError as e:
            logger.warning("Ignoring incomplete stored credential", scope=self.scope, error_count=e.error_count())
            return None

    def has_valid_access_token(self) -> bool:
        credential = self.current_credential()
        if credential is None:
            return False
        return not tokens.is_expired(credential.access_token, self.leeway_seconds)

    def attach_auth(self, request: ApiRequest) -> ApiRequest:
        """Add the bearer header when a credential exists; otherwise send unauthenticated."""
        credential = self.current_credential()
        if credential is None:
            return request
        return request.with_bearer(credential.access_token)

    def update_user(self, user: UserProfile) -> Optional[SessionCredential]:
        """Replace the profile snapshot of the stored credential in place."""
        credential = self.current_credential()
        if credential is None:
            return None
        updated = credential.with_user(user)
        self._write(updated)
        return updated

    def clear(self) -> None:
        """Remove the stored credential. Safe to call when nothing is stored."""
        self.store.remove(self.storage_key)

    async def send(self, request: ApiRequest) -> OperationResult:
        """Run an authenticated request, renewing the access token at most once."""
        try:
            data = await asyncio.to_thread(self.api.execute, self.attach_auth(request))
        except UnauthorizedError:
            return await self.handle_unauthorized_response(request)
        except APIError as e:
            return OperationResult.from_exception(e)
        return OperationResult.success(data)

    async def handle_unauthorized_response(self, request: ApiRequest) -> OperationResult:
        """
        Refresh once and retry ``request`` once with the new access token.

        An explicitly rejected refresh token ends the session. A network
        failure during refresh leaves the credential untouched so the caller
        can try again later.
        """
        credential = self.current_credential()
        if credential is None:
            return OperationResult.failure(ErrorKind.AUTH_EXPIRED, "Not signed in")

        logger.info("Access token rejected, refreshing", scope=self.scope, path=request.path)
        try:
            pair: TokenPair = await asyncio.to_thread(self.api.refresh, credential.refresh_token)
        except TransientNetworkFailure as e:
            logger.warning("Token refresh unreachable", scope=self.scope, error=str(e))
            return OperationResult.from_exception(e)
        except InvalidRefreshToken as e:
            self._end_session("invalid_refresh_token")
            return OperationResult.failure(ErrorKind.AUTH_EXPIRED, str(e))

        # Refresh in place; the user may have logged out while the call was in flight
        current = self.current_credential()
        if current is None or current.user.id != credential.user.id:
            logger.info("Session changed during refresh, discarding new tokens", scope=self.scope)
            return OperationResult.failure(ErrorKind.AUTH_EXPIRED, "Session changed during refresh")
        refreshed = current.with_tokens(pair)
        self._write(refreshed)
        logger.info("Token refreshed", scope=self.scope)

        try:
            data = await asyncio.to_thread(self.api.execute, request.with_bearer(refreshed.access_token))
        except UnauthorizedError as e:
            self._end_session("retry_unauthorized")
            return OperationResult.failure(ErrorKind.AUTH_EXPIRED, str(e))
        except APIError as e:
            return OperationResult.from_exception(e)
        return OperationResult.success(data)

    def _write(self, credential: SessionCredential) -> None:
        self.store.set_json(self.storage_key, credential.to_record())

    def _end_session(self, reason: str) -> None:
        self.clear()
        logger.warning("Session ended", scope=self.scope, reason=reason)
        self.events.emit(self.ended_event, reason=reason)


def build_manager(
    store: PersistentStore,
    api,
    events: EventBus,
    scope: str,
    leeway_seconds: int = 0,
) -> CredentialManager:
    """Build the manager for ``scope`` ("customer" or "admin") with its own storage key and events."""
    if scope == "admin":
        return CredentialManager(
            store,
            api,
            events,
            storage_key=ADMIN_SESSION_KEY,
            scope="admin",
            established_event=ADMIN_SESSION_ESTABLISHED,
            ended_event=ADMIN_SESSION_ENDED,
            leeway_seconds=leeway_seconds,
        )
    return CredentialManager(store, api, events, leeway_seconds=leeway_seconds)
