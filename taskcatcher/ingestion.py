"""
メッセージ取り込みパイプライン

全プラットフォーム共通の処理順:
    1. 監視対象ルームか確認（無効・未登録ならここで終了）
    2. タスク抽出（タグが無ければ終了）
    3. 重複チェック（同じメッセージから作成済みなら終了）
    4. 送信者名の解決（失敗時はプレースホルダー）
    5. タスク登録（一意制約違反は重複扱い）
    6. 作成通知をバックグラウンドで送信

「監視対象外」「タスクではない」「重複」は正常系の結果として返す。
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from taskcatcher.channels.base import NormalizedMessage
from taskcatcher.extractor import TaskAnalysis, analyze_message
from taskcatcher.logging import get_logger, log_audit_event
from taskcatcher.models import Task
from taskcatcher.notification import TaskInfo, dispatch_task_notification
from taskcatcher.store import rooms as rooms_store
from taskcatcher.store import tasks as tasks_store

logger = get_logger(__name__)

SenderResolver = Callable[[NormalizedMessage], Awaitable[str]]


class IngestOutcome(str, enum.Enum):
    CREATED = "created"
    NOT_MONITORED = "not_monitored"
    NOT_A_TASK = "not_a_task"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class IngestResult:
    outcome: IngestOutcome
    task: Optional[Task] = None
    analysis: Optional[TaskAnalysis] = None

    @property
    def created(self) -> bool:
        return self.outcome is IngestOutcome.CREATED


def _is_monitored(
    session: Session,
    message: NormalizedMessage,
    company_id: Optional[int],
    workspace_id: Optional[str],
) -> bool:
    if workspace_id:
        active_rooms = rooms_store.get_active_rooms_by_workspace(session, workspace_id)
        return any(room.room_id == message.room_id for room in active_rooms)
    return rooms_store.is_room_active(session, message.source, message.room_id, company_id)


def _insert_task(
    session: Session,
    message: NormalizedMessage,
    analysis: TaskAnalysis,
    sender_name: str,
    company_id: Optional[int],
) -> Optional[Task]:
    task = tasks_store.create_task(
        session,
        room_id=message.room_id,
        message_id=message.message_id,
        content=analysis.task_content,
        original_message=message.text,
        sender_name=sender_name,
        priority=analysis.priority,
        source=message.source,
        company_id=company_id,
        service_url=message.extra.get("service_url"),
    )
    if task is not None:
        session.commit()
    return task


async def _resolve_sender_name(
    message: NormalizedMessage,
    resolve_sender: Optional[SenderResolver],
) -> str:
    placeholder = message.sender_name or message.sender_id
    if resolve_sender is None:
        return placeholder
    try:
        return await resolve_sender(message) or placeholder
    except Exception:
        logger.warning(
            "Sender name resolution failed, using placeholder",
            source=message.source,
            exc_info=True,
        )
        return placeholder


async def ingest_message(
    session: Session,
    message: NormalizedMessage,
    company_id: Optional[int],
    *,
    check_duplicate: bool = True,
    resolve_sender: Optional[SenderResolver] = None,
    workspace_id: Optional[str] = None,
    notify: bool = True,
) -> IngestResult:
    """
    正規化済みメッセージからタスクを作成

    Args:
        session: DBセッション（クエリはワーカースレッドで実行する）
        message: 正規化済みメッセージ
        company_id: テナントID（None はレガシーのグローバル設定）
        check_duplicate: 登録前に既存タスクを確認するか
        resolve_sender: 送信者名を取得する非同期関数
        workspace_id: Slack の team_id（指定時はワークスペース単位で監視対象を判定）
        notify: 作成通知を送るか

    Returns:
        IngestResult
    """
    monitored = await asyncio.to_thread(_is_monitored, session, message, company_id, workspace_id)
    if not monitored:
        logger.info("Room not monitored", source=message.source, room_id=message.room_id)
        return IngestResult(IngestOutcome.NOT_MONITORED)

    analysis = analyze_message(message.text)
    if not analysis.is_task:
        logger.debug("Message is not a task", source=message.source, message_id=message.message_id)
        return IngestResult(IngestOutcome.NOT_A_TASK, analysis=analysis)

    if check_duplicate:
        existing = await asyncio.to_thread(
            tasks_store.find_task_by_message,
            session,
            message.message_id,
            message.source,
            company_id,
        )
        if existing is not None:
            logger.info("Duplicate message, skipping", source=message.source, message_id=message.message_id)
            return IngestResult(IngestOutcome.DUPLICATE, task=existing, analysis=analysis)

    sender_name = await _resolve_sender_name(message, resolve_sender)

    task = await asyncio.to_thread(_insert_task, session, message, analysis, sender_name, company_id)
    if task is None:
        return IngestResult(IngestOutcome.DUPLICATE, analysis=analysis)

    logger.info(
        "Task created",
        task_id=task.id,
        source=message.source,
        room_id=message.room_id,
        priority=task.priority,
    )
    log_audit_event(
        logger,
        action="create",
        resource_type="task",
        resource_id=str(task.id),
        details={"source": message.source, "message_id": message.message_id},
    )

    if notify:
        dispatch_task_notification(TaskInfo.from_task(task), "create", company_id)

    return IngestResult(IngestOutcome.CREATED, task=task, analysis=analysis)
