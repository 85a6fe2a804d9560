import logging
import os
import sys

import uvicorn
from fastapi import FastAPI

logging.basicConfig(
    stream=sys.stdout,
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("token_relay.run")


def degraded_app(startup_error: str) -> FastAPI:
    """Keeps the health probe answering when the real app cannot be imported."""
    fallback = FastAPI(title="Token Relay (degraded)")

    @fallback.get("/health")
    async def health():
        return {"status": "ok", "mode": "emergency_degraded", "error": startup_error}

    return fallback


def load_app():
    """Returns the app to serve and the port to serve it on."""
    try:
        # Importing the config module logs SET/NOT SET for every variable it reads.
        from token_relay.config import PORT
        from token_relay.main import app
    except Exception as e:
        logger.exception(f"Token relay failed to start, serving degraded app: {e}")
        return degraded_app(str(e)), int(os.environ.get("PORT", "3000"))

    logger.info("Token relay application loaded.")
    return app, PORT


if __name__ == "__main__":
    app, port = load_app()
    logger.info(f"Serving on 0.0.0.0:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info", access_log=True)
