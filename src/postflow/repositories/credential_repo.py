"""Credential repository keyed by (tenant_id, platform).

Intake replaces a credential with a single upsert. A refresh only replaces
the tokens it was derived from: when the row changed in the meantime the
write matches nothing and the caller must re-read.
"""

from datetime import datetime

from sqlalchemy import and_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from postflow.db.base import utcnow
from postflow.db.models.credential import CredentialRow
from postflow.models.credential import Credential
from postflow.repositories.base import BaseRepository
from postflow.services.id_generator import generate_id

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CredentialRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, CredentialRow)

    async def get(self, tenant_id: str, platform: str) -> CredentialRow | None:
        stmt = (
            select(CredentialRow)
            .where(
                and_(
                    CredentialRow.tenant_id == tenant_id,
                    CredentialRow.platform == platform,
                )
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_tenant(self, tenant_id: str) -> list[CredentialRow]:
        return await self.list_by_field("tenant_id", tenant_id)

    async def put(
        self,
        credential: Credential,
        refreshed_at: datetime | None = None,
    ) -> CredentialRow:
        """Insert or replace the credential for its (tenant, platform) in one statement."""
        dialect = self.session.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Credential upsert is not supported on {dialect}")

        table = CredentialRow.__table__
        # Keyed by column name; the metadata attribute maps to the "metadata" column
        values = {
            "access_token": credential.access_token,
            "refresh_token": credential.refresh_token,
            "expires_at": credential.expires_at,
            "metadata": credential.metadata or None,
            "scopes": credential.scopes,
            "updated_at": utcnow(),
        }
        if refreshed_at is not None:
            values["refreshed_at"] = refreshed_at

        stmt = (
            insert(table)
            .values(
                credential_id=generate_id("cred_"),
                tenant_id=credential.tenant_id,
                platform=credential.platform,
                **values,
            )
            .on_conflict_do_update(
                index_elements=[table.c.tenant_id, table.c.platform],
                set_=values,
            )
        )
        await self.session.execute(stmt)
        return await self.get(credential.tenant_id, credential.platform)

    async def replace_refreshed(
        self,
        previous: Credential,
        refreshed: Credential,
        refreshed_at: datetime,
    ) -> bool:
        """Store refreshed tokens only if the row still holds the ones they came from.

        Metadata and scopes are left alone. Returns False when the credential
        was replaced or removed after ``previous`` was read.
        """
        if previous.refresh_token is None:
            refresh_matches = CredentialRow.refresh_token.is_(None)
        else:
            refresh_matches = CredentialRow.refresh_token == previous.refresh_token

        stmt = (
            update(CredentialRow)
            .where(
                CredentialRow.tenant_id == previous.tenant_id,
                CredentialRow.platform == previous.platform,
                CredentialRow.access_token == previous.access_token,
                refresh_matches,
            )
            .values(
                access_token=refreshed.access_token,
                refresh_token=refreshed.refresh_token,
                expires_at=refreshed.expires_at,
                refreshed_at=refreshed_at,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
