"""
タスク権限判定

ユーザー種別:
    system_admin = 全テナントの全タスクを操作可能
    admin        = 自テナントの全タスクを操作可能
    user         = ロール権限（RolePermission）の範囲でのみ操作可能

ロール権限は (room_id, source) に対する付与で、NULL はワイルドカード。

- check_task_permission: 1タスクに対する権限。該当する行のうち最も具体的な
  1行（完全一致 +2 / ワイルドカード +1 をルームとソースで合算）を採用し、
  同点は先に現れた行が勝つ。
- filter_tasks_by_permission: 一覧の絞り込み。該当する行のどれか1つでも
  can_view なら表示する（最も具体的な行が can_view=False でも見える）。
  この2つの判定は一致しないことがある。
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy.orm import Session

from taskcatcher.store import roles as roles_store

T = TypeVar("T")


@dataclass(frozen=True)
class SessionUser:
    """認証済みユーザー（JWT のクレームから復元）"""
    id: int
    email: str
    name: str
    company_id: Optional[int]
    user_type: str   # "system_admin", "admin", "user"


@dataclass(frozen=True)
class TaskPermission:
    can_view: bool
    can_edit_status: bool
    can_delete: bool


FULL_PERMISSION = TaskPermission(can_view=True, can_edit_status=True, can_delete=True)
NO_PERMISSION = TaskPermission(can_view=False, can_edit_status=False, can_delete=False)


def is_system_admin(user: SessionUser) -> bool:
    return user.user_type == "system_admin"


def is_admin(user: SessionUser) -> bool:
    """管理者（システム管理者含む）かどうか"""
    return user.user_type in ("system_admin", "admin")


def _matches(permission: Any, room_id: str, source: str) -> bool:
    if permission.room_id is not None and permission.room_id != room_id:
        return False
    if permission.source is not None and permission.source != source:
        return False
    return True


def _specificity(permission: Any, room_id: str, source: str) -> int:
    score = 2 if permission.room_id == room_id else 1
    score += 2 if permission.source == source else 1
    return score


def resolve_permission(
    permissions: Sequence[Any],
    room_id: str,
    source: str,
) -> TaskPermission:
    """
    権限行のリストから、指定ルーム・ソースの権限を決定

    Args:
        permissions: RolePermission 相当（room_id, source, can_* を持つ）のリスト
        room_id: 対象タスクのルームID
        source: 対象タスクのソース

    Returns:
        最も具体的な行のフラグ。該当行が無ければすべて False
    """
    best = None
    best_score = 0

    for permission in permissions:
        if not _matches(permission, room_id, source):
            continue
        score = _specificity(permission, room_id, source)
        if score > best_score:
            best = permission
            best_score = score

    if best is None:
        return NO_PERMISSION

    return TaskPermission(
        can_view=bool(best.can_view),
        can_edit_status=bool(best.can_edit_status),
        can_delete=bool(best.can_delete),
    )


def filter_tasks_with_permissions(
    permissions: Sequence[Any],
    tasks: Iterable[T],
) -> List[T]:
    """該当する権限行のいずれかが can_view のタスクだけを残す"""
    viewable = [p for p in permissions if p.can_view]
    return [
        task for task in tasks
        if any(_matches(p, task.room_id, task.source) for p in viewable)
    ]


def check_task_permission(
    session: Session,
    user: SessionUser,
    room_id: str,
    source: str,
) -> TaskPermission:
    """ユーザーの1タスクに対する権限"""
    if is_admin(user):
        return FULL_PERMISSION
    permissions = roles_store.get_user_permissions(session, user.id)
    return resolve_permission(permissions, room_id, source)


def filter_tasks_by_permission(
    session: Session,
    user: SessionUser,
    tasks: Sequence[T],
) -> List[T]:
    """一覧表示用の絞り込み（管理者はそのまま）"""
    if is_admin(user):
        return list(tasks)
    if not tasks:
        return []
    permissions = roles_store.get_user_permissions(session, user.id)
    return filter_tasks_with_permissions(permissions, tasks)
