"""Users and Trusted-seller applications API router."""
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from edgeup.auth import get_current_user, require_admin
from edgeup.database import get_db
from edgeup.dependencies import get_user_service
from edgeup.models import User
from edgeup.schemas import (
    AdminRequestItem,
    ProfileUpdate,
    StatusMessage,
    TrustedRequestCreate,
    UserResponse
)
from edgeup.services.user_service import UserService

router = APIRouter(tags=["users"])


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Public member directory."""
    return user_service.list_users(db)


@router.put("/user/profile", response_model=UserResponse)
async def update_profile(
    request: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
):
    """Update the caller's profile - requires authentication."""
    return user_service.update_profile(
        db,
        user,
        name=request.name,
        email=request.email,
        country=request.country,
        city=request.city,
        avatar_url=request.avatar_url
    )


@router.get("/my-trusted-request")
async def my_trusted_request(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
):
    """Caller's most recent Trusted-seller application, or {} if none."""
    request = user_service.latest_trusted_request(db, user.id)
    if request is None:
        return {}
    return {
        "id": request.id,
        "pitch": request.pitch,
        "status": request.status,
        "created_at": request.created_at
    }


@router.post("/request-trusted", response_model=StatusMessage, status_code=201)
async def request_trusted(
    request: TrustedRequestCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service)
):
    """Apply for Trusted-seller status; every admin is notified."""
    user_service.request_trusted(db, user, request.pitch)
    return {"message": "Request submitted. An admin will review it shortly."}


@router.get("/admin/requests", response_model=List[AdminRequestItem])
async def pending_requests(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    """Pending Trusted-seller applications, oldest first - admin only."""
    return user_service.pending_requests(db)


@router.post("/admin/request/{request_id}/{action}", response_model=StatusMessage)
async def decide_request(
    request_id: str,
    action: str = Path(..., description="approve or reject"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    user_service: UserService = Depends(get_user_service)
):
    """Approve or reject a pending application - admin only."""
    request = user_service.decide_request(db, request_id, action, admin)
    return {"message": f"Request {request.status}"}
