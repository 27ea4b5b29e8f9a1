"""Authentication API router."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from edgeup.auth import get_current_user
from edgeup.database import get_db
from edgeup.dependencies import get_user_service
from edgeup.models import User
from edgeup.monitoring import auth_attempts_counter
from edgeup.schemas import AuthResponse, LoginRequest, MeResponse, RegisterRequest, UserResponse
from edgeup.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["authentication"])


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """
    Create an account.

    Only Untrusted and Trusted can be chosen here; Admin is never
    self-assigned.
    """
    user, token = user_service.register(
        db,
        name=request.name,
        email=request.email,
        password=request.password,
        country=request.country,
        city=request.city,
        role=request.role,
        avatar_url=request.avatar_url
    )
    return {"token": token, "user": UserResponse.model_validate(user)}


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Authenticate with email and password and return a bearer token."""
    auth_attempts_counter.add(1, {"type": "login"})

    user, token = user_service.login(db, request.email, request.password)
    return {"token": token, "user": UserResponse.model_validate(user)}


@router.get("/me", response_model=MeResponse)
async def me(user: User = Depends(get_current_user)):
    """Get the authenticated user."""
    return {"user": UserResponse.model_validate(user)}
