from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta


@dataclass(frozen=True)
class CredentialPair:
    access_token: str
    refresh_token: str
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at

    def seconds_until_expiry(self, now: datetime | None = None) -> float | None:
        if self.expires_at is None:
            return None
        return (self.expires_at - (now or datetime.now(UTC))).total_seconds()


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    refresh_token: str
    expires_in: int

    def to_pair(self, now: datetime | None = None) -> CredentialPair:
        issued_at = now or datetime.now(UTC)
        return CredentialPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=issued_at + timedelta(seconds=self.expires_in),
        )


@dataclass(frozen=True)
class EncryptedValue:
    ciphertext: bytes
    iv: bytes


@dataclass(frozen=True)
class EncryptedCredentialRecord:
    access_token: EncryptedValue
    refresh_token: EncryptedValue
    expires_at: datetime | None
