from __future__ import annotations

import base64
import json
import os
from pathlib import Path

from stream_tag_bot.credentials.cipher import TokenCipher
from stream_tag_bot.credentials.models import CredentialPair, EncryptedCredentialRecord, EncryptedValue
from stream_tag_bot.errors import DecryptionFailed, PersistenceFailed
from stream_tag_bot.timing import parse_iso, to_iso

_ACCESS_AAD = b"access_token"
_REFRESH_AAD = b"refresh_token"
_FILE_MODE = 0o600


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _unb64(value: object) -> bytes:
    return base64.b64decode(str(value), validate=True)


def seal(pair: CredentialPair, cipher: TokenCipher) -> EncryptedCredentialRecord:
    return EncryptedCredentialRecord(
        access_token=cipher.encrypt(pair.access_token, associated_data=_ACCESS_AAD),
        refresh_token=cipher.encrypt(pair.refresh_token, associated_data=_REFRESH_AAD),
        expires_at=pair.expires_at,
    )


def unseal(record: EncryptedCredentialRecord, cipher: TokenCipher) -> CredentialPair:
    return CredentialPair(
        access_token=cipher.decrypt(
            record.access_token.ciphertext, record.access_token.iv, associated_data=_ACCESS_AAD
        ),
        refresh_token=cipher.decrypt(
            record.refresh_token.ciphertext, record.refresh_token.iv, associated_data=_REFRESH_AAD
        ),
        expires_at=record.expires_at,
    )


def record_to_dict(record: EncryptedCredentialRecord) -> dict:
    return {
        "iv": {
            "accessToken": _b64(record.access_token.iv),
            "refreshToken": _b64(record.refresh_token.iv),
        },
        "encryptedAccessToken": _b64(record.access_token.ciphertext),
        "encryptedRefreshToken": _b64(record.refresh_token.ciphertext),
        "expiresAt": to_iso(record.expires_at) if record.expires_at is not None else None,
    }


def record_from_dict(data: dict) -> EncryptedCredentialRecord:
    try:
        ivs = data["iv"]
        expires_at = data.get("expiresAt")
        return EncryptedCredentialRecord(
            access_token=EncryptedValue(
                ciphertext=_unb64(data["encryptedAccessToken"]),
                iv=_unb64(ivs["accessToken"]),
            ),
            refresh_token=EncryptedValue(
                ciphertext=_unb64(data["encryptedRefreshToken"]),
                iv=_unb64(ivs["refreshToken"]),
            ),
            expires_at=parse_iso(expires_at) if expires_at else None,
        )
    except (KeyError, TypeError, ValueError) as ex:
        raise DecryptionFailed(f"Malformed credential record: {ex}") from ex


class CredentialStore:
    """Single encrypted credential file, readable and writable by the owner only."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> EncryptedCredentialRecord | None:
        if not self._path.exists():
            return None
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as ex:
            raise DecryptionFailed(f"Corrupted credential file {self._path}: {ex}") from ex
        if not isinstance(data, dict):
            raise DecryptionFailed(f"Corrupted credential file {self._path}")
        return record_from_dict(data)

    def save(self, record: EncryptedCredentialRecord) -> None:
        payload = json.dumps(record_to_dict(record), indent=2)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.chmod(tmp_path, _FILE_MODE)
            os.replace(tmp_path, self._path)
        except OSError as ex:
            raise PersistenceFailed(f"Failed to write credentials to {self._path}: {ex}") from ex
