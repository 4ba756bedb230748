"""Platform credential table, one row per (tenant, platform)."""

from datetime import datetime

from sqlalchemy import JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from postflow.db.base import Base, TimestampMixin, UTCDateTime


class CredentialRow(Base, TimestampMixin):
    __tablename__ = "credentials"
    __table_args__ = (UniqueConstraint("tenant_id", "platform", name="uq_credentials_tenant_platform"),)

    credential_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(50), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    account_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    scopes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    refreshed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
