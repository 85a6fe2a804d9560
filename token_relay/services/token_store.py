import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from token_relay.core.errors import StoreError
from token_relay.models.relay import TokenRecord
from token_relay.models.token import StoredToken

logger = logging.getLogger("token_relay.store")


class TokenStore(ABC):
    """
    Append-only log of token records.

    The store assigns ``created_at`` itself; the record with the greatest
    ``created_at`` across all installations is the "latest" one.
    """

    kind = "abstract"

    @abstractmethod
    async def persist(self, record: TokenRecord) -> None:
        """Append a record. Raises StoreError on failure."""

    @abstractmethod
    async def retrieve_latest(self) -> Optional[TokenRecord]:
        """Most recent record, or None if nothing was ever persisted. Raises StoreError on failure."""


class SqlTokenStore(TokenStore):
    kind = "postgres"

    def __init__(self, session_maker):
        self._session_maker = session_maker

    async def persist(self, record: TokenRecord) -> None:
        row = StoredToken(
            token_value=record.token_value,
            installation_id=record.installation_id,
            api_base_url=record.api_base_url,
            app_id=record.app_id,
            environment_type=record.environment_type,
            environment_id=record.environment_id,
        )
        try:
            async with self._session_maker() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError("persist", f"Database insertion failed: {e}") from e
        except Exception as e:
            raise StoreError("persist", f"Unexpected storage error: {e}") from e

        logger.info(
            f"Persisted token for installation '{record.installation_id or '-'}'."
        )

    async def retrieve_latest(self) -> Optional[TokenRecord]:
        stmt = (
            select(StoredToken)
            .order_by(StoredToken.created_at.desc(), StoredToken.id.desc())
            .limit(1)
        )
        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                row = result.scalars().first()
        except SQLAlchemyError as e:
            raise StoreError("retrieve_latest", f"Database query failed: {e}") from e
        except Exception as e:
            raise StoreError("retrieve_latest", f"Unexpected storage error: {e}") from e

        if row is None:
            return None

        return TokenRecord(
            token_value=row.token_value or "",
            installation_id=row.installation_id or "",
            api_base_url=row.api_base_url or "",
            app_id=row.app_id or "",
            environment_type=row.environment_type or "",
            environment_id=row.environment_id or "",
            created_at=row.created_at,
        )


class InMemoryTokenStore(TokenStore):
    """Process-local store used when no database is configured, and in tests."""

    kind = "memory"

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rows: List[Tuple[int, TokenRecord]] = []

    async def persist(self, record: TokenRecord) -> None:
        stored = record.model_copy(update={"created_at": self._clock()})
        self._rows.append((len(self._rows), stored))

    async def retrieve_latest(self) -> Optional[TokenRecord]:
        if not self._rows:
            return None
        _, latest = max(self._rows, key=lambda row: (row[1].created_at, row[0]))
        return latest.model_copy()

    def __len__(self) -> int:
        return len(self._rows)
