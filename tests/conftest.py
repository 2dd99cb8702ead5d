"""Shared fixtures: an in-memory store and a scriptable fake backend"""

from typing import Any, Dict, List, Optional

import pytest

from storefront.core.events import EventBus
from storefront.core.session_context import StorefrontSession
from storefront.models.session import SessionCredential, TokenPair
from storefront.services.store import MemoryStore
from storefront.utils.config import Settings
from storefront.utils.exceptions import BackendRejected, UnauthorizedError


class FakeStorefrontAPI:
    """
    Stands in for StorefrontAPI.

    ``execute_results`` is a queue: each entry is returned, or raised when it
    is an exception. ``refresh_result`` works the same way for refresh().
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.otp_code = "123456"
        self.send_otp_error: Optional[Exception] = None
        self.verify_error: Optional[Exception] = None
        self.credential = SessionCredential(
            access_token="t1", refresh_token="r1", user={"id": "u1", "name": "Asha", "email": "a@b.com"}
        )
        self.admin_credential = SessionCredential(
            access_token="admin-t1",
            refresh_token="admin-r1",
            user={"id": "admin001", "name": "Admin", "email": "admin@shop.test", "role": "admin"},
        )
        self.admin_password = "admin123"
        self.refresh_result: Any = TokenPair(access_token="t2", refresh_token="r2")
        self.execute_results: List[Any] = []
        self.requests: List[Any] = []
        # Requests carrying one of these access tokens get a 401
        self.expired_tokens: set = set()

    def send_otp(self, email: str) -> Dict[str, Any]:
        self.calls.append(("send_otp", email))
        if self.send_otp_error is not None:
            raise self.send_otp_error
        return {"email": email, "expiresIn": "24 hours"}

    def verify_otp(self, email: str, otp: str, name: Optional[str] = None) -> SessionCredential:
        self.calls.append(("verify_otp", email, otp, name))
        if self.verify_error is not None:
            raise self.verify_error
        if otp != self.otp_code:
            raise BackendRejected("Invalid OTP", status_code=400)
        return self.credential

    def admin_login(self, email: str, password: str) -> SessionCredential:
        self.calls.append(("admin_login", email))
        if password != self.admin_password:
            raise BackendRejected("Invalid admin credentials", status_code=401)
        return self.admin_credential

    def refresh(self, refresh_token: str) -> TokenPair:
        self.calls.append(("refresh", refresh_token))
        if isinstance(self.refresh_result, Exception):
            raise self.refresh_result
        return self.refresh_result

    def execute(self, request) -> Any:
        self.requests.append(request)
        self.calls.append(("execute", request.method, request.path, request.headers.get("Authorization")))
        if request.headers.get("Authorization") in {f"Bearer {t}" for t in self.expired_tokens}:
            raise UnauthorizedError("jwt expired")
        if not self.execute_results:
            return {}
        result = self.execute_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def fake_api():
    return FakeStorefrontAPI()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def recorded(events):
    """Collect every emitted event as (name, payload)"""
    seen: List[tuple] = []
    for name in (
        "sessionEstablished",
        "sessionEnded",
        "adminSessionEstablished",
        "adminSessionEnded",
        "cartChanged",
        "wishlistChanged",
    ):
        events.subscribe(name, lambda _name=name, **payload: seen.append((_name, payload)))
    return seen


@pytest.fixture
def session(store, fake_api, events):
    s = StorefrontSession(settings=Settings(), store=store, api=fake_api, events=events)
    yield s
    s.close()
