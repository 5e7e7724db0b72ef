"""ユーザーストア"""

from typing import Optional

import bcrypt
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from taskcatcher.models import User


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt ハッシュと照合（ハッシュが壊れている場合は False）"""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def get_user(session: Session, user_id: int) -> Optional[User]:
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    stmt = select(User).where(func.lower(User.email) == email.strip().lower())
    return session.execute(stmt).scalar_one_or_none()


def authenticate_user(session: Session, email: str, password: str) -> Optional[User]:
    """
    メールアドレスとパスワードで認証

    Returns:
        認証成功時は User、失敗時（未登録・無効・パスワード不一致）は None
    """
    user = get_user_by_email(session, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def create_user(
    session: Session,
    email: str,
    password: str,
    name: str = "",
    user_type: str = "user",
    company_id: Optional[int] = None,
) -> User:
    user = User(
        email=email.strip().lower(),
        password_hash=hash_password(password),
        name=name,
        user_type=user_type,
        company_id=company_id,
        is_active=True,
    )
    session.add(user)
    session.flush()
    return user
