import httpx

from stream_tag_bot.credentials.models import TokenResponse
from stream_tag_bot.errors import TokenExchangeFailed

_TOKEN_URL = "https://id.twitch.tv/oauth2/token"


class TwitchIdentityClient:
    """Exchanges a refresh token for a new token pair.

    No timeout beyond httpx's transport defaults is applied.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        token_url: str = _TOKEN_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._http_client = http_client

    async def refresh(self, refresh_token: str) -> TokenResponse:
        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        try:
            if self._http_client is not None:
                response = await self._http_client.post(self._token_url, data=data)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self._token_url, data=data)
        except httpx.HTTPError as ex:
            raise TokenExchangeFailed(f"Token endpoint unreachable: {ex}") from ex

        if response.status_code != 200:
            raise TokenExchangeFailed(
                f"Token refresh failed: HTTP {response.status_code} {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
            return TokenResponse(
                access_token=str(payload["access_token"]),
                refresh_token=str(payload["refresh_token"]),
                expires_in=int(payload["expires_in"]),
            )
        except (ValueError, KeyError, TypeError) as ex:
            raise TokenExchangeFailed(f"Unexpected token response: {ex}") from ex


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("error_description") or payload.get("error") or "")
    return ""
