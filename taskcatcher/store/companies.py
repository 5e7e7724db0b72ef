"""企業（テナント）ストア"""

import secrets
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskcatcher.models import Company


def get_company(session: Session, company_id: int) -> Optional[Company]:
    return session.get(Company, company_id)


def get_company_by_webhook_token(session: Session, token: str) -> Optional[Company]:
    """
    Webhookトークンから有効な企業を取得

    無効化された企業は見つからなかったものとして扱う。
    """
    if not token:
        return None
    stmt = select(Company).where(
        Company.webhook_token == token,
        Company.is_active.is_(True),
    )
    return session.execute(stmt).scalar_one_or_none()


def generate_webhook_token() -> str:
    return secrets.token_urlsafe(24)


def create_company(
    session: Session,
    name: str,
    slug: str,
    webhook_token: Optional[str] = None,
) -> Company:
    company = Company(
        name=name,
        slug=slug,
        webhook_token=webhook_token or generate_webhook_token(),
        is_active=True,
    )
    session.add(company)
    session.flush()
    return company
