"""
テナント設定ストア

settings テーブル（テナント別の認証情報・通知設定）と
slack_workspaces テーブルへのアクセス。
"""

from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from taskcatcher.models import CompanySettings, SlackWorkspace


def get_company_settings(
    session: Session,
    company_id: Optional[int],
) -> Optional[CompanySettings]:
    """
    テナントの設定行を取得

    Args:
        session: DBセッション
        company_id: 企業ID。None の場合はレガシーのグローバル設定行

    Returns:
        設定行（未登録なら None）
    """
    if company_id is None:
        stmt = select(CompanySettings).where(CompanySettings.company_id.is_(None))
    else:
        stmt = select(CompanySettings).where(CompanySettings.company_id == company_id)
    return session.execute(stmt.order_by(CompanySettings.id).limit(1)).scalar_one_or_none()


def list_lark_settings(session: Session) -> List[CompanySettings]:
    """Lark の認証情報が設定されている行をすべて取得（テナント別 → レガシーの順）"""
    stmt = (
        select(CompanySettings)
        .where(or_(
            CompanySettings.lark_encrypt_key.is_not(None),
            CompanySettings.lark_verification_token.is_not(None),
        ))
        .order_by(CompanySettings.company_id.is_(None), CompanySettings.id)
    )
    return list(session.execute(stmt).scalars())


def find_settings_by_lark_token(
    session: Session,
    verification_token: str,
) -> Optional[CompanySettings]:
    """
    検証トークンが一致する設定行を探す

    トークン列は暗号化されうるため、DB側ではなく復号後の値で比較する。
    """
    if not verification_token:
        return None
    for row in list_lark_settings(session):
        if row.lark_verification_token and row.lark_verification_token == verification_token:
            return row
    return None


def upsert_company_settings(
    session: Session,
    company_id: Optional[int],
    **fields,
) -> CompanySettings:
    """設定行を作成または更新"""
    row = get_company_settings(session, company_id)
    if row is None:
        row = CompanySettings(company_id=company_id)
        session.add(row)
    for key, value in fields.items():
        if not hasattr(CompanySettings, key):
            raise ValueError(f"Unknown settings field: {key}")
        setattr(row, key, value)
    session.flush()
    return row


def get_active_slack_workspace(
    session: Session,
    team_id: str,
) -> Optional[SlackWorkspace]:
    stmt = select(SlackWorkspace).where(
        SlackWorkspace.workspace_id == team_id,
        SlackWorkspace.is_active.is_(True),
    )
    return session.execute(stmt).scalar_one_or_none()


def register_slack_workspace(
    session: Session,
    company_id: int,
    workspace_id: str,
    signing_secret: str,
    bot_token: Optional[str] = None,
    workspace_name: str = "",
) -> SlackWorkspace:
    workspace = SlackWorkspace(
        company_id=company_id,
        workspace_id=workspace_id,
        workspace_name=workspace_name,
        signing_secret=signing_secret,
        bot_token=bot_token,
        is_active=True,
    )
    session.add(workspace)
    session.flush()
    return workspace
