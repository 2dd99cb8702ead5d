"""Storefront backend HTTP client"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..models.session import SessionCredential, TokenPair
from ..utils.exceptions import (
    BackendRejected,
    InvalidRefreshToken,
    TransientNetworkFailure,
    UnauthorizedError,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    """An outgoing backend call, kept as data so it can be replayed after a token refresh."""
    method: str
    path: str
    json: Optional[Dict[str, Any]] = None
    params: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def with_bearer(self, access_token: str) -> "ApiRequest":
        headers = dict(self.headers)
        headers["Authorization"] = f"Bearer {access_token}"
        return replace(self, headers=headers)

    @property
    def is_idempotent(self) -> bool:
        return self.method.upper() in ("GET", "HEAD", "OPTIONS")


def _error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
    return default


def _unwrap(body: Any) -> Any:
    """Strip the ``{status, message, data}`` envelope when present"""
    if isinstance(body, dict) and "data" in body and "status" in body:
        return body["data"]
    return body


class StorefrontAPI:
    """Client for the storefront backend with typed error mapping"""

    def __init__(
        self,
        base_url: str = "http://localhost:5000/api",
        connection_timeout: float = 5.0,
        read_timeout: float = 10.0,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        refresh_path: str = "/auth/refresh-token",
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        # (connect_timeout, read_timeout)
        self.timeout = (connection_timeout, read_timeout)
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.refresh_path = refresh_path
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_settings(cls, settings) -> "StorefrontAPI":
        return cls(
            base_url=settings.base_url,
            connection_timeout=settings.connection_timeout,
            read_timeout=settings.read_timeout,
            max_retries=settings.max_retries,
            retry_backoff=settings.retry_backoff,
            refresh_path=settings.refresh_path,
        )

    def close(self) -> None:
        self.session.close()

    def _make_request(self, request: ApiRequest) -> Any:
        """
        Send one HTTP request and map the outcome.

        Returns:
            Response payload with the envelope removed

        Raises:
            UnauthorizedError: HTTP 401
            TransientNetworkFailure: connection problems, timeouts, HTTP 5xx
            BackendRejected: any other explicit error answer
        """
        url = f"{self.base_url}/{request.path.lstrip('/')}"
        logger.debug("Sending storefront request", method=request.method, path=request.path)

        try:
            response = self.session.request(
                method=request.method,
                url=url,
                json=request.json,
                params=request.params,
                headers=request.headers or None,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning("Request timeout", path=request.path, timeout=self.timeout, error=str(e))
            raise TransientNetworkFailure(f"Request timed out: {str(e)}", endpoint=request.path)
        except requests.exceptions.RequestException as e:
            logger.warning("Request failed", path=request.path, error=str(e))
            raise TransientNetworkFailure(f"Request failed: {str(e)}", endpoint=request.path)

        logger.info(
            "Received storefront response",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
        )

        try:
            body = response.json()
        except ValueError:
            body = None

        status = response.status_code
        if status == 401:
            raise UnauthorizedError(_error_message(body, "Unauthorized"), endpoint=request.path)
        if status >= 500:
            raise TransientNetworkFailure(
                _error_message(body, f"Server error ({status})"),
                status_code=status,
                endpoint=request.path,
            )
        if status >= 400:
            raise BackendRejected(
                _error_message(body, f"Request rejected ({status})"),
                status_code=status,
                endpoint=request.path,
            )
        if body is None:
            if not response.content:
                return {}
            raise BackendRejected("Invalid JSON in response", status_code=status, endpoint=request.path)
        if isinstance(body, dict) and body.get("status") == "error":
            raise BackendRejected(_error_message(body, "Request failed"), status_code=status, endpoint=request.path)

        return _unwrap(body)

    def execute(self, request: ApiRequest) -> Any:
        """Send a request; idempotent ones are retried on transient failures."""
        if not request.is_idempotent:
            return self._make_request(request)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception_type(TransientNetworkFailure),
            reraise=True,
        )
        return retrying(self._make_request, request)

    def send_otp(self, email: str) -> Dict[str, Any]:
        data = self.execute(ApiRequest("POST", "/auth/send-otp", json={"email": email}))
        return data if isinstance(data, dict) else {}

    def verify_otp(self, email: str, otp: str, name: Optional[str] = None) -> SessionCredential:
        payload: Dict[str, Any] = {"email": email, "otp": otp}
        if name:
            payload["name"] = name
        data = self.execute(ApiRequest("POST", "/auth/verify-otp", json=payload))
        return self._credential_from(data, "/auth/verify-otp")

    def admin_login(self, email: str, password: str) -> SessionCredential:
        data = self.execute(
            ApiRequest("POST", "/auth/admin-login", json={"email": email, "password": password})
        )
        return self._credential_from(data, "/auth/admin-login")

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access token.

        Raises:
            InvalidRefreshToken: the backend rejected the refresh token
            TransientNetworkFailure: the backend could not be reached
        """
        try:
            data = self.execute(
                ApiRequest("POST", self.refresh_path, json={"refreshToken": refresh_token})
            )
        except (UnauthorizedError, BackendRejected) as e:
            raise InvalidRefreshToken(str(e) or "invalid_refresh_token", status_code=e.status_code)

        try:
            return TokenPair.model_validate(data)
        except ValueError:
            raise InvalidRefreshToken("Refresh response did not contain an access token")

    def _credential_from(self, data: Any, endpoint: str) -> SessionCredential:
        try:
            return SessionCredential.model_validate(data)
        except ValueError as e:
            logger.error("Malformed credential response", endpoint=endpoint, error=str(e))
            raise BackendRejected("Malformed credential response", endpoint=endpoint)

