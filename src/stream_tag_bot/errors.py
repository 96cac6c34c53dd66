from __future__ import annotations


class StreamTagError(Exception):
    """Base for errors that can be reported back to whoever issued a command."""

    user_message = "Something went wrong."

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.user_message)


class NoActiveSession(StreamTagError):
    user_message = "Error: there is no live stream to tag."


class VodNotFound(StreamTagError):
    user_message = "That VOD does not exist."


class NoStreamForVod(StreamTagError):
    user_message = "That VOD does not belong to a stream."


class NoTagsFound(StreamTagError):
    user_message = "No tags were found for that VOD."


class DecryptionFailed(StreamTagError):
    user_message = "Stored credentials could not be decrypted."


class TokenExchangeFailed(StreamTagError):
    user_message = "Token refresh failed."

    def __init__(self, detail: str | None = None, *, status_code: int | None = None):
        super().__init__(detail)
        self.status_code = status_code


class PersistenceFailed(StreamTagError):
    user_message = "Could not write to durable storage."


class TransportDisconnected(StreamTagError):
    user_message = "Chat connection dropped."


class ChatAuthFailed(TransportDisconnected):
    user_message = "Chat login was rejected."
