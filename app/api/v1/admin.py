"""
Admin API endpoints for account session management.
"""

from fastapi import APIRouter

from app.api.v1.auth import deadline
from app.core.auth import AdminClaims, Identity
from app.core.logging import get_logger
from app.schemas.auth import RevokedSessionsResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/accounts/{account_id}/revoke-sessions", response_model=RevokedSessionsResponse)
async def revoke_account_sessions(
    account_id: str,
    admin: AdminClaims,
    identity: Identity,
) -> RevokedSessionsResponse:
    """
    Force-logout an account on every device.

    Requires the admin role. Access tokens already handed out stay valid
    until they expire.
    """
    async with deadline():
        await identity.get_account(account_id)
        revoked = await identity.revoke_all(account_id)

    logger.info(
        "admin_sessions_revoked",
        admin_id=admin.account_id,
        target_account_id=account_id,
        revoked=revoked,
    )
    return RevokedSessionsResponse(message="Sessions revoked", revoked=revoked)
