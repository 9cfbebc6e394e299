# app/core/security.py
from dataclasses import dataclass
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import time, jwt
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.errors import Forbidden, Unauthenticated
from passlib.hash import bcrypt_sha256
from app.db.session import get_db
from app.models.user import User, UserRole

ALGO = "HS256"
ACCESS_TTL = 30 * 24 * 3600
bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Verified caller: who they are and what role they act under."""
    user_id: str
    role: UserRole
    name: str = ""

    @property
    def is_authority(self) -> bool:
        return self.role == UserRole.authority


def hash_password(raw: str) -> str:
    return bcrypt_sha256.hash(raw)

def verify_password(raw: str, hashed: str) -> bool:
    return bcrypt_sha256.verify(raw, hashed)

def make_token(email: str, role: str, ttl: int = ACCESS_TTL) -> dict:
    now = int(time.time())
    payload = {"sub": email, "role": role, "iat": now, "exp": now + ttl}
    return {
        "access_token": jwt.encode(payload, settings.jwt_secret, algorithm=ALGO),
        "token_type": "bearer",
        "expires_in": ttl,
    }

def _decode_token(creds: Optional[HTTPAuthorizationCredentials]) -> dict:
    if not creds:
        raise Unauthenticated("Not authenticated")
    try:
        return jwt.decode(creds.credentials, settings.jwt_secret, algorithms=[ALGO])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")

def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                     db: Session = Depends(get_db)) -> User:
    payload = _decode_token(creds)
    email = payload.get("sub")
    if not email:
        raise Unauthenticated("Invalid token payload")
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise Unauthenticated("User not found")
    if not user.is_active:
        raise Unauthenticated("user_inactive")
    return user

def get_current_identity(user: User = Depends(get_current_user)) -> Identity:
    return Identity(user_id=user.id, role=user.role, name=user.name)

def require_role(*roles):
    role_values = [r.value if isinstance(r, UserRole) else r for r in roles]
    def _dep(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role.value not in role_values:
            raise Forbidden("This action requires the authority role")
        return identity
    return _dep
