"""ロール・ロール権限ストア"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskcatcher.models import Role, RolePermission, UserRole


def get_user_permissions(session: Session, user_id: int) -> List[RolePermission]:
    """
    ユーザーのロール経由で到達できる権限行をすべて取得

    並び順は (role_id, id) で固定。権限判定の同点時は先に現れた行が勝つ。
    """
    stmt = (
        select(RolePermission)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .where(UserRole.user_id == user_id)
        .order_by(RolePermission.role_id, RolePermission.id)
    )
    return list(session.execute(stmt).scalars())


def create_role(session: Session, company_id: int, name: str) -> Role:
    role = Role(company_id=company_id, name=name)
    session.add(role)
    session.flush()
    return role


def add_role_permission(
    session: Session,
    role_id: int,
    room_id: Optional[str] = None,
    source: Optional[str] = None,
    can_view: bool = True,
    can_edit_status: bool = False,
    can_delete: bool = False,
) -> RolePermission:
    """ロールに権限行を追加（room_id / source が None ならワイルドカード）"""
    permission = RolePermission(
        role_id=role_id,
        room_id=room_id,
        source=source,
        can_view=can_view,
        can_edit_status=can_edit_status,
        can_delete=can_delete,
    )
    session.add(permission)
    session.flush()
    return permission


def assign_role(session: Session, user_id: int, role_id: int) -> UserRole:
    existing = session.execute(
        select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
    ).scalar_one_or_none()
    if existing is not None:
        return existing
    link = UserRole(user_id=user_id, role_id=role_id)
    session.add(link)
    session.flush()
    return link
