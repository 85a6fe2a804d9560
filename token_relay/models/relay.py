from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Token ingestion ---


class Claims(CamelModel):
    """Identifying claims read from the platform token; empty string when absent."""

    installation_id: str = ""
    api_base_url: str = ""
    app_id: str = ""
    environment_type: str = ""
    environment_id: str = ""


class TokenRecord(Claims):
    token_value: str = ""
    created_at: Optional[datetime] = Field(
        default=None, description="Assigned by the token store on persist"
    )

    @classmethod
    def from_claims(cls, token_value: str, claims: Claims) -> "TokenRecord":
        return cls(token_value=token_value, **claims.model_dump())


class IngestAck(BaseModel):
    ok: str = "Token valid"


# --- Relay ---


class RelayPayload(CamelModel):
    payload_id: str = ""
    payload_data: str = ""

    @classmethod
    def from_body(cls, body: Any) -> "RelayPayload":
        """Lenient body reader: any value that is not a string becomes ''."""
        if not isinstance(body, dict):
            body = {}
        fields = {}
        for name, field in cls.model_fields.items():
            value = body.get(field.alias)
            fields[name] = value if isinstance(value, str) else ""
        return cls(**fields)


class RelayError(BaseModel):
    """Failure details of a relay attempt. Unknown fields stay None and are omitted on output."""

    data: Optional[Any] = None
    status: Optional[int] = None
    headers: Optional[Dict[str, str]] = None
    message: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class RelayResult(CamelModel):
    payload_id: str = ""
    payload_data: str = ""
    request_url: str
    error: RelayError = Field(default_factory=RelayError)
    raw_response_data: Optional[Any] = None

    def to_response(self) -> Dict[str, Any]:
        """Wire shape: camelCase keys, ``error`` without the unknown fields."""
        body = self.model_dump(by_alias=True, exclude={"error"})
        body["error"] = self.error.model_dump(exclude_none=True)
        return body
