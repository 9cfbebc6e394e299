# File: app/routers/auth.py

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.user import User, UserRole
from app.schemas.auth import RegisterIn, LoginIn, TokenOut
from app.schemas.user import UserOut
from app.core.errors import Unauthenticated, ValidationError
from app.core.security import hash_password, verify_password, make_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role.value,
        phone=user.phone,
        address=user.address,
        is_active=user.is_active,
    )


def _token_out(user: User) -> TokenOut:
    return TokenOut(**make_token(user.email, user.role.value), user=_user_out(user))


@router.post("/register", response_model=TokenOut, status_code=201)
def register(body: RegisterIn, db: Session = Depends(get_db)):
    email = body.email.lower()
    # Ensure unique email
    if db.query(User).filter(User.email == email).first():
        raise ValidationError("Email already registered")

    user = User(
        email=email,
        name=body.name.strip(),
        hashed_password=hash_password(body.password),
        role=UserRole(body.role),
        phone=body.phone,
        address=body.address,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered %s user %s", user.role.value, user.id)

    # Sign-in immediately
    return _token_out(user)


@router.post("/login", response_model=TokenOut)
def login(body: LoginIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if not user or not user.hashed_password:
        raise Unauthenticated("Invalid email or password")
    if not verify_password(body.password, user.hashed_password):
        raise Unauthenticated("Invalid email or password")
    if not user.is_active:
        raise Unauthenticated("Your account has been deactivated. Please contact support.")
    return _token_out(user)


@router.get("/me", response_model=UserOut)
def me(current: User = Depends(get_current_user)):
    return _user_out(current)
