from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from core.db import get_db
from core.errors import Forbidden
from models.profile import Profile
from security import jwt as jwt_utils

ADMIN_ROLE = "admin"


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_optional_user_id(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> Optional[str]:
    """Signed-in shoppers get their orders linked; guests check out anonymously."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    try:
        return jwt_utils.decode_access(token).get("sub")
    except jwt.PyJWTError:
        return None


def get_current_profile(
    db: Session = Depends(get_db), authorization: Optional[str] = Header(default=None, alias="Authorization")
) -> Profile:
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    try:
        payload = jwt_utils.decode_access(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    profile = db.get(Profile, str(payload.get("sub")))
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Profile not found")
    return profile


def require_admin(profile: Profile = Depends(get_current_profile)) -> Profile:
    if profile.role != ADMIN_ROLE:
        raise Forbidden()
    return profile
