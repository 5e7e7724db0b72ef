"""
Auth API

メールアドレス + パスワード（bcrypt）でログインし、JWT を発行する。
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Request

from api.app.deps.auth import create_access_token
from api.app.limiter import limiter
from api.app.schemas.auth import LoginRequest, LoginResponse
from taskcatcher.db import session_scope
from taskcatcher.exceptions import AuthenticationFailure
from taskcatcher.logging import get_logger
from taskcatcher.store import users as users_store

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _login_db(email: str, password: str) -> Optional[dict]:
    """DB認証（bcrypt照合）。失敗時は None"""
    with session_scope() as session:
        user = users_store.authenticate_user(session, email, password)
        if user is None:
            return None
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "company_id": user.company_id,
            "user_type": user.user_type,
        }


@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
async def login(request: Request, req: LoginRequest):
    """ログイン（DB認証 + JWT発行）"""
    user = await asyncio.to_thread(_login_db, req.email, req.password)
    if not user:
        logger.info("Login failed")
        raise AuthenticationFailure("Invalid credentials")

    token = create_access_token(
        user_id=user["id"],
        company_id=user["company_id"],
        user_type=user["user_type"],
        email=user["email"],
        name=user["name"],
    )
    logger.info("Login succeeded", user_id=user["id"])
    return {"access_token": token, "token_type": "bearer", "user": user}
