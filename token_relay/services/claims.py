import json
import logging
from typing import Any, Dict

import jwt

from token_relay.core.errors import ExtractionError
from token_relay.models.relay import Claims

logger = logging.getLogger("token_relay.claims")

# The platform signs these tokens, but only the payload segment is read here.
# Claims are informational and must not be used for authorization decisions.
_UNVERIFIED_OPTIONS = {
    "verify_signature": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
}

# Claims field -> path inside the token payload
CLAIM_PATHS = {
    "installation_id": ("app", "installationId"),
    "api_base_url": ("app", "apiBaseUrl"),
    "app_id": ("app", "id"),
    "environment_type": ("app", "environment", "type"),
    "environment_id": ("app", "environment", "id"),
}


def decode_unverified(token: str) -> Dict[str, Any]:
    """Return the claim payload of a compact JWT without checking its signature."""
    if not token:
        raise ExtractionError("Empty token")
    try:
        return jwt.decode(token, options=dict(_UNVERIFIED_OPTIONS))
    except jwt.InvalidTokenError as e:
        raise ExtractionError(f"Malformed token: {e}") from e


def _as_text(value: Any) -> str:
    """Render a claim value the way it reads when interpolated into text: lists join on commas."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join("" if item is None else _as_text(item) for item in value)
    return json.dumps(value)


def _read_path(payload: Dict[str, Any], path) -> str:
    node: Any = payload
    for key in path:
        if not isinstance(node, dict):
            return ""
        node = node.get(key)
    if not node:
        return ""
    return _as_text(node)


def extract_claims(token: str) -> Claims:
    """
    Read installation, app and environment identifiers from a platform token.

    Never raises: a token that cannot be decoded yields empty claims, and each
    claim missing from the payload resolves to an empty string on its own.
    """
    try:
        payload = decode_unverified(token)
    except ExtractionError as e:
        logger.error(f"Error decoding the JWT: {e.message}")
        return Claims()

    values = {}
    for field, path in CLAIM_PATHS.items():
        value = _read_path(payload, path)
        if value:
            logger.info(f"Extracted {field}: {value}")
        else:
            logger.warning(f"Could not find {'.'.join(path)} in the token.")
        values[field] = value

    return Claims(**values)
