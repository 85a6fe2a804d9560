import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from token_relay.config import (
    DB_AUTO_CREATE,
    RELAY_TARGET_URL,
    RELAY_TIMEOUT_SECONDS,
    SYSTEM_TOKEN_HEADER,
)
from token_relay.api.forge import router as forge_router
from token_relay.api.health import router as health_router
from token_relay.core import database
from token_relay.core.middleware import RequestLoggingMiddleware
from token_relay.services.ingestion_service import IngestionOrchestrator
from token_relay.services.relay_dispatcher import RelayDispatcher
from token_relay.services.token_store import (
    InMemoryTokenStore,
    SqlTokenStore,
    TokenStore,
)

logging.basicConfig(
    stream=sys.stdout,
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("token_relay.main")


async def build_token_store() -> TokenStore:
    if database.async_session_maker is None:
        logger.warning("No database configured, tokens are kept in process memory.")
        return InMemoryTokenStore()

    if DB_AUTO_CREATE:
        try:
            await database.init_models()
        except Exception as e:
            # Schema may already exist or the DB may come up later; the store reports its own errors.
            logger.error(f"Failed ensuring database schema: {e}")

    return SqlTokenStore(database.async_session_maker)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Initializing Token Relay components...")

    store = await build_token_store()
    dispatcher = RelayDispatcher(
        request_url=RELAY_TARGET_URL,
        credential_header=SYSTEM_TOKEN_HEADER,
        client=httpx.AsyncClient(timeout=RELAY_TIMEOUT_SECONDS),
    )
    app.state.orchestrator = IngestionOrchestrator(store, dispatcher)
    logger.info(f"Token store: {store.kind} | relay target: {RELAY_TARGET_URL}")

    yield

    logger.info("Tearing down Token Relay components...")
    try:
        await dispatcher.aclose()
        await database.dispose_engine()
    except Exception as e:
        logger.error(f"Error during teardown: {e}")


app = FastAPI(
    title="Token Relay",
    description="Stores the platform's latest system token and relays payloads to the installed app with it.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(forge_router)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Callers always get a 200; unexpected failures are logged and reported in the body."""
    logger.error(
        f"Unhandled Server Error routing request '{request.method} {request.url}': {exc}"
    )
    return JSONResponse(
        status_code=200,
        content={"ok": False, "error": "Internal Server Exception (Degraded)"},
        headers={"X-Degraded-Status": "true"},
    )
