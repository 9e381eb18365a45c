"""
User authentication routes (JWT bearer).
Login is rate limited per client IP to prevent brute-force.
"""
import logging

import redis
from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.schemas.users import LoginRequest, ProfileUpdate, RegisterRequest, Token
from app.services.auth.login_rate_limit import (
    check_login_rate_limit,
    get_client_ip,
    reset_login_attempts,
)
from app.services.auth.security import create_access_token, hash_password, verify_password
from app.services.rate_limit import get_redis
from app.services.users.service import EmailAlreadyRegistered, UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _user_payload(db: Session, user: User) -> dict:
    svc = UserService(db)
    profile = svc.get_profile(user.id)
    return {
        "id": user.id,
        "email": user.email,
        "full_name": profile.full_name if profile else None,
        "phone_number": profile.phone_number if profile else None,
        "is_registration_complete": bool(profile and profile.is_registration_complete),
        "role": svc.get_role(user.id),
    }


@router.post("/auth/register", status_code=status.HTTP_201_CREATED, response_model=Token)
def register(body: RegisterRequest = Body(...), db: Session = Depends(get_db)):
    try:
        user = UserService(db).register(body.email, hash_password(body.password), body.full_name)
    except EmailAlreadyRegistered:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This email is already registered")
    return {
        "access_token": create_access_token(user.id),
        "token_type": "bearer",
        "user": _user_payload(db, user),
    }


@router.post("/auth/login", response_model=Token)
def login(
    request: Request,
    body: LoginRequest = Body(...),
    db: Session = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
):
    """
    Login with email + password. Expects JSON: { "email": "...", "password": "..." }.
    Rate limited to prevent brute-force.
    """
    client_ip = get_client_ip(request)
    retry_after = check_login_rate_limit(redis_client, client_ip)
    if retry_after:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    svc = UserService(db)
    user = svc.get_by_email(body.email)
    if user is None or not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if user.is_banned:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Your account has been suspended")

    reset_login_attempts(redis_client, client_ip)
    svc.touch_login(user)
    logger.info("user_logged_in", extra={"user_id": user.id})
    return {
        "access_token": create_access_token(user.id),
        "token_type": "bearer",
        "user": _user_payload(db, user),
    }


@router.get("/auth/me")
def get_me(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get current user info."""
    return _user_payload(db, current_user)


@router.put("/me/profile")
def update_profile(
    body: ProfileUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Complete registration / edit profile."""
    UserService(db).update_profile(current_user, **body.model_dump(exclude_unset=True))
    return _user_payload(db, current_user)
