"""api/app/deps/auth.py - JWT認証依存モジュール

ダッシュボードAPIは必ず認証必須。
Bearer tokenからユーザー（SessionUser）を復元する。
"""

import datetime
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from taskcatcher.config import get_settings
from taskcatcher.exceptions import AuthenticationFailure, PermissionDenied, TaskCatcherError
from taskcatcher.permissions import SessionUser, is_admin, is_system_admin
from taskcatcher.tenant import set_current_tenant

JWT_ALGORITHM = "HS256"

_bearer_scheme = HTTPBearer(auto_error=False)


def _get_jwt_secret() -> str:
    """JWT秘密鍵を取得（環境変数 TASKCATCHER_JWT_SECRET）"""
    secret = get_settings().JWT_SECRET
    if not secret:
        raise TaskCatcherError("JWT secret key is not configured")
    return secret


def decode_jwt(token: str) -> dict:
    """JWTトークンをデコード・検証する。

    Args:
        token: Bearer token文字列

    Returns:
        dict: JWT claims (sub, company_id, user_type, email, name, exp, iat)

    Raises:
        AuthenticationFailure: トークンが無効・期限切れ・必須claim欠落の場合
    """
    secret = _get_jwt_secret()
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationFailure("Invalid or expired token")

    if not payload.get("sub"):
        raise AuthenticationFailure("Token missing required claim: sub")
    if payload.get("user_type") not in ("system_admin", "admin", "user"):
        raise AuthenticationFailure("Token missing required claim: user_type")
    # system_admin 以外は必ずテナントに所属する
    if payload["user_type"] != "system_admin" and payload.get("company_id") is None:
        raise AuthenticationFailure("Token missing required claim: company_id")

    return payload


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> SessionUser:
    """JWT Bearer tokenから認証済みユーザーを取得する。

    テナントコンテキストもここで設定する（ログに tenant_id が付く）。

    Raises:
        AuthenticationFailure(401): トークンなし/無効/期限切れ
    """
    if credentials is None:
        raise AuthenticationFailure("Unauthorized")

    payload = decode_jwt(credentials.credentials)

    try:
        user = SessionUser(
            id=int(payload["sub"]),
            email=payload.get("email", ""),
            name=payload.get("name", ""),
            company_id=payload.get("company_id"),
            user_type=payload["user_type"],
        )
    except (TypeError, ValueError):
        raise AuthenticationFailure("Invalid token subject")

    set_current_tenant(user.company_id)
    return user


async def require_admin(user: SessionUser = Depends(get_current_user)) -> SessionUser:
    """管理者（admin / system_admin）のみ"""
    if not is_admin(user):
        raise PermissionDenied("Forbidden")
    return user


async def require_system_admin(user: SessionUser = Depends(get_current_user)) -> SessionUser:
    """システム管理者のみ"""
    if not is_system_admin(user):
        raise PermissionDenied("Forbidden")
    return user


def create_access_token(
    user_id: int,
    company_id: Optional[int],
    user_type: str,
    email: str = "",
    name: str = "",
    expires_minutes: Optional[int] = None,
) -> str:
    """JWTアクセストークンを生成する（ログイン・テスト用）。

    Args:
        user_id: ユーザーID
        company_id: 企業ID（system_admin は None）
        user_type: system_admin / admin / user
        email: メールアドレス
        name: 表示名
        expires_minutes: 有効期限（分）。省略時は JWT_EXPIRES_MINUTES

    Returns:
        str: JWT token
    """
    if expires_minutes is None:
        expires_minutes = get_settings().JWT_EXPIRES_MINUTES
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": str(user_id),
        "company_id": company_id,
        "user_type": user_type,
        "email": email,
        "name": name,
        "iat": now,
        "exp": now + datetime.timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=JWT_ALGORITHM)
