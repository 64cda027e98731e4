"""
Admin API endpoints.

Every route requires a valid session AND the admin role; the two checks
are separate dependencies so role authorization never parses tokens.
"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from core.auth import get_current_session, require_role
from core.database import get_db
from core.roles import UserRole
from schemas import MessageResponse, RoleUpdate, UserListResponse, UserResponse
from services.auth_service import AuthService

router = APIRouter(
    prefix="/v1/admin",
    tags=["admin"],
    dependencies=[Depends(get_current_session), Depends(require_role(UserRole.ADMIN))],
)


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    users, total = AuthService(db).list_users(page=page, limit=limit)
    return {
        "users": [UserResponse.model_validate(u) for u in users],
        "total": total,
        "page": page,
        "limit": limit,
    }


@router.put("/users/{user_id}/role", response_model=MessageResponse)
def update_user_role(
    user_id: str,
    body: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db)
):
    """Assign a role to a user (the only way to grant admin)."""
    user = AuthService(db).update_role(request.state.session, user_id, body.role)
    return {"message": f"Role updated to {user.role}"}
