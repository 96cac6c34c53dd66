from stream_tag_bot.credentials.cipher import TokenCipher
from stream_tag_bot.credentials.identity_client import TwitchIdentityClient
from stream_tag_bot.credentials.models import CredentialPair, EncryptedCredentialRecord, TokenResponse
from stream_tag_bot.credentials.refresh_scheduler import CredentialRefreshScheduler
from stream_tag_bot.credentials.store import CredentialStore, seal, unseal

__all__ = [
    "CredentialPair",
    "CredentialRefreshScheduler",
    "CredentialStore",
    "EncryptedCredentialRecord",
    "TokenCipher",
    "TokenResponse",
    "TwitchIdentityClient",
    "seal",
    "unseal",
]
