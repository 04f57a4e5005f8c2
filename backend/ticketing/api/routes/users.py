"""
User administration endpoints. Admin only.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.session import get_db
from ticketing.schemas.user import RoleUpdate, UserResponse
from ticketing.services.user_service import list_users, update_role
from ticketing.core.security import CurrentUser, require_admin

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/", response_model=list[UserResponse])
async def list_users_endpoint(
    _admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_users(db)


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_role_endpoint(
    user_id: int,
    role_data: RoleUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Change a user's role. Takes effect on that user's next login."""
    return await update_role(db, user_id, role_data.role, acting_user_id=admin.id)
