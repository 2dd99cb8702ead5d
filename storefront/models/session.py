"""Session, credential and OTP challenge models"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .catalog import EntityId


class UserProfile(BaseModel):
    """Denormalized profile snapshot. Not authoritative; the backend owns it."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: EntityId
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[str] = None


class TokenPair(BaseModel):
    """Result of a refresh call. ``refresh_token`` is None when the backend keeps the old one."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class SessionCredential(BaseModel):
    """
    Access/refresh token pair plus the user snapshot.

    Persisted as one record so readers never see a token without a user or
    the reverse. Field aliases match the backend's camelCase payloads.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: str = Field(alias="refreshToken", min_length=1)
    user: UserProfile

    def with_tokens(self, pair: TokenPair) -> "SessionCredential":
        """Return a copy carrying the refreshed tokens"""
        return self.model_copy(
            update={
                "access_token": pair.access_token,
                "refresh_token": pair.refresh_token or self.refresh_token,
            }
        )

    def with_user(self, user: UserProfile) -> "SessionCredential":
        return self.model_copy(update={"user": user})

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class OtpChallenge(BaseModel):
    """Outstanding OTP challenge. Lives in memory only, never persisted."""

    email: str
    requested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    attempts: int = 0

    def matches(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() == self.email.lower()

    def is_expired(self, ttl_minutes: int, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.requested_at + timedelta(minutes=ttl_minutes)
