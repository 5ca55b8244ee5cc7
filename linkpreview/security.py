from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import User, get_db


def bearer_token(header: str) -> str:
    scheme, _, token = (header or "").partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def user_from_api_key(db: Session, api_key: str) -> Optional[User]:
    if not api_key:
        return None
    return db.execute(select(User).where(User.api_key == api_key)).scalar_one_or_none()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Session cookie first, then ``Authorization: Bearer <api key>`` / ``X-API-Key``."""
    uid = request.session.get("user_id")
    if uid:
        user = db.get(User, uid)
        if user:
            return user

    api_key = bearer_token(request.headers.get("authorization", "")) or request.headers.get("x-api-key", "")
    user = user_from_api_key(db, api_key.strip())
    if user:
        return user
    raise HTTPException(401, "unauthorized")
