"""Custom exceptions for the storefront client core"""

from typing import Optional


class StorefrontError(Exception):
    """Base exception for the storefront core"""
    pass


class ConfigError(StorefrontError):
    """Configuration error"""
    pass


class StorageError(StorefrontError):
    """Persistent storage could not be written"""
    pass


class APIError(StorefrontError):
    """Error returned by (or while talking to) the storefront backend"""

    def __init__(self, message: str, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class BackendRejected(APIError):
    """Backend answered with an explicit error payload (wrong OTP, bad email, ...)"""
    pass


class UnauthorizedError(APIError):
    """Backend rejected the bearer token (HTTP 401)"""

    def __init__(self, message: str = "Unauthorized", endpoint: Optional[str] = None):
        super().__init__(message, status_code=401, endpoint=endpoint)


class InvalidRefreshToken(APIError):
    """Refresh endpoint explicitly rejected the refresh token. Do not retry."""

    def __init__(self, message: str = "invalid_refresh_token", status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, endpoint="refresh")


class TransientNetworkFailure(APIError):
    """Network-level or temporary server failure. Safe to retry later."""
    pass
