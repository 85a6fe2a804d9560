from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
import logging

from token_relay.config import SYSTEM_TOKEN_HEADER
from token_relay.services.ingestion_service import IngestionOrchestrator

logger = logging.getLogger("token_relay.api.forge")

router = APIRouter(tags=["Forge"])

USER_TOKEN_HEADER = "x-forge-oauth-user"


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    return request.app.state.orchestrator


def _mask(value: str | None) -> str:
    if not value:
        return "missing"
    return f"present (...{value[-4:] if len(value) > 4 else ''}, length {len(value)})"


# Periodically invoked by the platform with a fresh system token.
@router.get("/forge-token")
async def forge_token(
    request: Request,
    authorization: str | None = Header(default=None),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    system_token = request.headers.get(SYSTEM_TOKEN_HEADER)
    logger.info(f"{SYSTEM_TOKEN_HEADER}: {_mask(system_token)}")
    logger.info(f"{USER_TOKEN_HEADER}: {_mask(request.headers.get(USER_TOKEN_HEADER))}")

    ack = await orchestrator.ingest_token(authorization, system_token)
    return JSONResponse(status_code=200, content=ack.model_dump())


@router.post("/forge-insert")
async def forge_insert(
    request: Request,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Relay the caller's payload to the installed app. Relay errors are reported in the body, never as a status."""
    try:
        body = await request.json()
    except Exception:
        logger.warning("Relay request body is not valid JSON, using empty payload.")
        body = {}

    result = await orchestrator.relay_payload(body)
    return JSONResponse(status_code=200, content=result.to_response())
