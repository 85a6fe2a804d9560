import os
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("token_relay.config")

# Web trigger of the installed Forge app receiving relayed payloads.
DEFAULT_RELAY_TARGET_URL = (
    "https://4174ace3-7376-4b47-a064-cd41702f640e.hello.atlassian-dev.net"
    "/x1/I4Szy7GAkYXl5ENYaxoJLWSc18M"
)


class Settings(BaseSettings):
    database_url: str | None = None
    database_public_url: str | None = None
    port: int = 3000

    relay_target_url: str = DEFAULT_RELAY_TARGET_URL
    relay_timeout_seconds: float = 10.0
    system_token_header: str = "x-forge-oauth-system"

    db_auto_create: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()


# Either variable may carry the connection string; the private one wins.
def get_database_url():
    return settings.database_url or settings.database_public_url


DATABASE_URL = get_database_url()

if DATABASE_URL:
    logger.info(
        f"Database URL configured (target: {DATABASE_URL.split('@')[-1] if '@' in DATABASE_URL else 'local'})"
    )
else:
    logger.warning(
        "No DATABASE_URL or DATABASE_PUBLIC_URL provided. Tokens will be kept in memory."
    )

PORT = settings.port
RELAY_TARGET_URL = settings.relay_target_url
RELAY_TIMEOUT_SECONDS = settings.relay_timeout_seconds
SYSTEM_TOKEN_HEADER = settings.system_token_header.lower()
DB_AUTO_CREATE = settings.db_auto_create


def log_environment_status():
    """Logs the presence of critical environment variables without leaking secrets."""
    logger.info("--- TOKEN RELAY ENVIRONMENT STATUS ---")
    vars_to_check = [
        "DATABASE_URL",
        "DATABASE_PUBLIC_URL",
        "PORT",
        "RELAY_TARGET_URL",
        "RELAY_TIMEOUT_SECONDS",
        "SYSTEM_TOKEN_HEADER",
        "DB_AUTO_CREATE",
    ]
    for var in vars_to_check:
        val = os.environ.get(var)
        status = "SET (Length: " + str(len(val)) + ")" if val else "NOT SET / DEFAULT"
        logger.info(f"{var}: {status}")
    logger.info("--------------------------------------")


log_environment_status()
