import logging
from typing import Any

from token_relay.core.errors import StoreError
from token_relay.models.relay import (
    IngestAck,
    RelayPayload,
    RelayResult,
    TokenRecord,
)
from token_relay.services.claims import extract_claims
from token_relay.services.relay_dispatcher import RelayDispatcher
from token_relay.services.token_store import TokenStore

logger = logging.getLogger("token_relay.ingest")

BEARER_PREFIX = "Bearer "


def parse_bearer(authorization: str | None) -> str:
    """Token part of an ``Authorization: Bearer <token>`` header, or ''."""
    if authorization and authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):]
    return ""


class IngestionOrchestrator:
    """Wires the token ingest flow and the payload relay flow to the store and dispatcher."""

    def __init__(self, store: TokenStore, dispatcher: RelayDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def ingest_token(
        self, authorization: str | None, system_token: str | None
    ) -> IngestAck:
        """
        Record the token the platform just delivered.

        Claims come from the bearer JWT, the stored credential comes from the
        system-token header. Extraction and persistence failures are logged and
        the platform is acknowledged either way.
        """
        claims = extract_claims(parse_bearer(authorization))
        record = TokenRecord.from_claims(system_token or "", claims)

        try:
            await self.store.persist(record)
        except StoreError as e:
            logger.error(f"Failed persisting token record: {e.message}")

        return IngestAck()

    async def _latest_credential(self) -> str:
        try:
            latest = await self.store.retrieve_latest()
        except StoreError as e:
            logger.error(f"Failed reading latest token, relaying without one: {e.message}")
            return ""

        if latest is None:
            logger.warning("No token stored yet, relaying without one.")
            return ""
        return latest.token_value

    async def relay_payload(self, body: Any) -> RelayResult:
        """Forward the caller's payload using the most recently stored token."""
        payload = RelayPayload.from_body(body)
        credential = await self._latest_credential()
        return await self.dispatcher.forward(payload, credential)
