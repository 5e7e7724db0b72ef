"""
タスクストア

タスクの作成・取得・更新・削除。
重複配信は find_task_by_message() による事前チェックと、
(message_id, source, company_id) の一意制約の二段で防ぐ。
"""

from typing import List, Optional

from sqlalchemy import case, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskcatcher.logging import get_logger
from taskcatcher.models import Task

logger = get_logger(__name__)


# 一覧の並び順（未着手 → 対応中 → 完了、高 → 中 → 低）
_STATUS_ORDER = case(
    {"pending": 0, "in_progress": 1, "completed": 2},
    value=Task.status,
    else_=3,
)
_PRIORITY_ORDER = case(
    {"high": 0, "medium": 1, "low": 2},
    value=Task.priority,
    else_=3,
)


def _tenant_filter(company_id: Optional[int]):
    if company_id is None:
        return Task.company_id.is_(None)
    return Task.company_id == company_id


def get_task(session: Session, task_id: int) -> Optional[Task]:
    return session.get(Task, task_id)


def find_task_by_message(
    session: Session,
    message_id: str,
    source: str,
    company_id: Optional[int],
) -> Optional[Task]:
    """同一メッセージから作成済みのタスクを探す"""
    stmt = select(Task).where(
        Task.message_id == message_id,
        Task.source == source,
        _tenant_filter(company_id),
    )
    return session.execute(stmt.limit(1)).scalar_one_or_none()


def create_task(
    session: Session,
    *,
    room_id: str,
    message_id: str,
    content: str,
    original_message: str,
    sender_name: str,
    priority: str,
    source: str,
    company_id: Optional[int],
    status: str = "pending",
    memo: Optional[str] = None,
    service_url: Optional[str] = None,
) -> Optional[Task]:
    """
    タスクを作成

    一意制約に違反した場合（同じメッセージの同時配信）は None を返す。
    その際セッションはロールバックされるため、同じセッションで
    未コミットの変更を持ったまま呼ばないこと。

    Returns:
        作成したタスク。重複の場合は None
    """
    task = Task(
        room_id=room_id,
        message_id=message_id,
        content=content,
        original_message=original_message,
        sender_name=sender_name,
        status=status,
        priority=priority,
        source=source,
        company_id=company_id,
        memo=memo,
        service_url=service_url,
    )
    session.add(task)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        logger.info(
            "Duplicate task insert ignored",
            message_id=message_id,
            source=source,
            company_id=company_id,
        )
        return None
    return task


def list_tasks(
    session: Session,
    company_id: Optional[int],
    all_tenants: bool = False,
) -> List[Task]:
    """
    タスク一覧を取得

    並び順: ステータス → 優先度 → 作成日時の新しい順

    Args:
        company_id: 対象テナント
        all_tenants: True の場合はテナントで絞り込まない（system_admin用）
    """
    stmt = select(Task)
    if not all_tenants:
        stmt = stmt.where(_tenant_filter(company_id))
    stmt = stmt.order_by(_STATUS_ORDER, _PRIORITY_ORDER, Task.created_at.desc(), Task.id.desc())
    return list(session.execute(stmt).scalars())


def update_task(
    session: Session,
    task: Task,
    status: Optional[str] = None,
    memo: Optional[str] = None,
) -> Task:
    if status is not None:
        task.status = status
    if memo is not None:
        task.memo = memo
    session.flush()
    return task


def delete_task(session: Session, task: Task) -> None:
    session.delete(task)
    session.flush()


def delete_completed_tasks(session: Session, company_id: Optional[int]) -> int:
    """完了済みタスクを一括削除し、削除件数を返す"""
    stmt = delete(Task).where(
        Task.status == "completed",
        _tenant_filter(company_id),
    )
    result = session.execute(stmt)
    session.flush()
    return result.rowcount or 0
