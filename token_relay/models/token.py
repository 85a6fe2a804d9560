from sqlalchemy import Column, String, DateTime, Index, Integer, func

from token_relay.core.database import Base


class StoredToken(Base):
    """Append-only log of system tokens delivered by the platform, newest wins."""

    __tablename__ = "tokens_next"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_value = Column(String, nullable=False, default="", server_default="")
    installation_id = Column(String, nullable=False, default="", server_default="")
    api_base_url = Column(String, nullable=False, default="", server_default="")
    app_id = Column(String, nullable=False, default="", server_default="")
    environment_type = Column(String, nullable=False, default="", server_default="")
    environment_id = Column(String, nullable=False, default="", server_default="")
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_tokens_next_created_at", created_at.desc()),)
