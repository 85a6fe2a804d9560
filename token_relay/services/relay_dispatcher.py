import logging
from typing import Any, Optional

import httpx

from token_relay.config import (
    RELAY_TARGET_URL,
    RELAY_TIMEOUT_SECONDS,
    SYSTEM_TOKEN_HEADER,
)
from token_relay.models.relay import RelayError, RelayPayload, RelayResult

logger = logging.getLogger("token_relay.relay")


def _describe(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


def _response_body(response: httpx.Response) -> Optional[Any]:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_from_response(response: httpx.Response) -> RelayError:
    return RelayError(
        data=_response_body(response),
        status=response.status_code,
        headers=dict(response.headers),
        message=f"Request failed with status code {response.status_code}",
    )


class RelayDispatcher:
    """
    Posts caller payloads to the installed app's web trigger.

    The stored platform token travels in the system-token header rather than
    ``Authorization``. Each call is a single attempt and never raises: failures
    are folded into ``RelayResult.error``.
    """

    def __init__(
        self,
        request_url: str = RELAY_TARGET_URL,
        credential_header: str = SYSTEM_TOKEN_HEADER,
        client: httpx.AsyncClient | None = None,
        timeout: float = RELAY_TIMEOUT_SECONDS,
    ):
        self.request_url = request_url
        self.credential_header = credential_header
        self._client = client
        self._timeout = timeout

    async def _post(self, body: dict, headers: dict) -> httpx.Response:
        # Web triggers may redirect; only the final response counts.
        if self._client is not None:
            return await self._client.post(
                self.request_url, json=body, headers=headers, follow_redirects=True
            )

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(
                self.request_url, json=body, headers=headers, follow_redirects=True
            )

    async def forward(self, payload: RelayPayload, credential: str) -> RelayResult:
        result = RelayResult(
            payload_id=payload.payload_id,
            payload_data=payload.payload_data,
            request_url=self.request_url,
        )
        body = payload.model_dump(by_alias=True)
        headers = {
            self.credential_header: credential,
            "Accept": "application/json",
        }

        try:
            response = await self._post(body, headers)
        except httpx.HTTPError as e:
            logger.warning(f"Relay to {self.request_url} failed in transport: {_describe(e)}")
            result.error = RelayError(message=_describe(e))
            return result
        except Exception as e:
            logger.error(f"Unexpected relay failure to {self.request_url}: {_describe(e)}")
            result.error = RelayError(message=_describe(e))
            return result

        if not response.is_success:
            logger.warning(
                f"Relay to {self.request_url} rejected with status {response.status_code}"
            )
            result.error = _error_from_response(response)
            return result

        logger.info(f"Relayed payload '{payload.payload_id}' ({response.status_code}).")
        result.raw_response_data = _response_body(response) or None
        return result

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
