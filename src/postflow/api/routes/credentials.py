"""Credential intake and connection health endpoints."""

from fastapi import APIRouter

from postflow.dependencies import Connections
from postflow.models.credential import CredentialIntake

router = APIRouter(tags=["Connections"])


@router.put("/tenants/{tenant_id}/credentials/{platform}")
async def put_credential(tenant_id: str, platform: str, body: CredentialIntake, connections: Connections) -> dict:
    credential = await connections.store_credential(tenant_id, platform, body)
    # Tokens are never echoed back
    return {
        "tenant_id": credential.tenant_id,
        "platform": credential.platform,
        "expires_at": credential.expires_at.isoformat() if credential.expires_at else None,
        "has_refresh_token": credential.refresh_token is not None,
    }


@router.get("/tenants/{tenant_id}/connections")
async def get_connections(tenant_id: str, connections: Connections) -> dict:
    report = await connections.connection_health(tenant_id)
    return report.model_dump(mode="json", exclude_none=True)
