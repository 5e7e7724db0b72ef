"""
タスク通知メール

タスクの作成・完了・削除をテナントの通知先にメールで知らせる（Resend API）。

送信条件（どれか1つでも欠けたら何もせず成功扱い）:
    - テナントに Resend API キーが設定されている
    - 通知先メールアドレスが1件以上ある
    - 種別ごとの通知設定（notify_on_create 等）が有効

送信失敗は戻り値とログで報告し、例外は投げない。
Webhook / API のハンドラからは dispatch_task_notification() で
バックグラウンドタスクとして起動し、完了を待たない。
"""

import asyncio
import html
import time
from dataclasses import dataclass
from typing import Any, Optional, Set

import httpx

from taskcatcher.config import get_settings
from taskcatcher.db import session_scope
from taskcatcher.logging import get_logger, log_external_api_call
from taskcatcher.store import settings as settings_store
from taskcatcher.tenant import TenantContext

logger = get_logger(__name__)

EMAIL_TIMEOUT_SECONDS = 10.0

NOTIFICATION_SUBJECTS = {
    "create": "新しいタスクが登録されました",
    "complete": "タスクが完了しました",
    "delete": "タスクが削除されました",
}

_TYPE_BADGES = {
    "create": '<span style="color: #059669; font-weight: bold;">新規登録</span>',
    "complete": '<span style="color: #2563eb; font-weight: bold;">完了</span>',
    "delete": '<span style="color: #dc2626; font-weight: bold;">削除</span>',
}

SOURCE_LABELS = {
    "chatwork": "Chatwork",
    "teams": "Teams",
    "lark": "Lark",
    "slack": "Slack",
    "line": "LINE",
}

PRIORITY_LABELS = {
    "high": "高",
    "medium": "中",
    "low": "低",
}

# 実行中の通知タスク（完了前にGCされないよう参照を保持）
_pending_notifications: Set["asyncio.Task[Any]"] = set()


@dataclass(frozen=True)
class TaskInfo:
    id: int
    content: str
    sender_name: str
    source: str
    priority: str
    status: Optional[str] = None

    @classmethod
    def from_task(cls, task) -> "TaskInfo":
        return cls(
            id=task.id,
            content=task.content,
            sender_name=task.sender_name or "",
            source=task.source,
            priority=task.priority,
            status=task.status,
        )


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    sent: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class _NotificationConfig:
    api_key: Optional[str]
    recipients: list
    enabled: bool
    dashboard_url: str


def build_subject(kind: str) -> str:
    return f"[たすきゃっちゃー] {NOTIFICATION_SUBJECTS[kind]}"


def build_email_html(task: TaskInfo, kind: str, dashboard_url: str) -> str:
    """通知メール本文（ユーザー入力はすべてエスケープする）"""
    source_label = SOURCE_LABELS.get(task.source, task.source)
    priority_label = PRIORITY_LABELS.get(task.priority, task.priority)
    content = html.escape(task.content or "")
    sender = html.escape(task.sender_name or "不明")
    link = html.escape(dashboard_url, quote=True)

    return f"""<!DOCTYPE html>
<html lang="ja">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: 'Helvetica Neue', Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #f9fafb;">
  <div style="background: linear-gradient(to right, #14b8a6, #06b6d4); padding: 20px; border-radius: 8px 8px 0 0;">
    <h1 style="color: white; margin: 0; font-size: 24px;">たすきゃっちゃー</h1>
  </div>
  <div style="background: white; padding: 24px; border-radius: 0 0 8px 8px;">
    <p style="font-size: 16px; color: #374151; margin-bottom: 20px;">{_TYPE_BADGES[kind]}</p>
    <table style="width: 100%; border-collapse: collapse; background: #f3f4f6;">
      <tr><td style="padding: 8px; color: #6b7280; width: 80px;">タスク:</td><td style="padding: 8px; color: #111827;">{content}</td></tr>
      <tr><td style="padding: 8px; color: #6b7280;">送信元:</td><td style="padding: 8px; color: #111827;">{html.escape(source_label)}</td></tr>
      <tr><td style="padding: 8px; color: #6b7280;">送信者:</td><td style="padding: 8px; color: #111827;">{sender}</td></tr>
      <tr><td style="padding: 8px; color: #6b7280;">優先度:</td><td style="padding: 8px; color: #111827;">{html.escape(priority_label)}</td></tr>
    </table>
    <p style="margin-top: 20px;">
      <a href="{link}" style="display: inline-block; background: #14b8a6; color: white; padding: 12px 24px; border-radius: 6px; text-decoration: none;">ダッシュボードを開く</a>
    </p>
  </div>
  <p style="text-align: center; color: #9ca3af; font-size: 12px; margin-top: 20px;">このメールは「たすきゃっちゃー」から自動送信されています。</p>
</body>
</html>
"""


def _load_config(company_id: Optional[int], kind: str) -> _NotificationConfig:
    default_url = get_settings().DASHBOARD_URL
    with session_scope() as session:
        row = settings_store.get_company_settings(session, company_id)
        if row is None:
            return _NotificationConfig(None, [], False, default_url)
        enabled = {
            "create": row.notify_on_create,
            "complete": row.notify_on_complete,
            "delete": row.notify_on_delete,
        }[kind]
        return _NotificationConfig(
            api_key=row.resend_api_key,
            recipients=row.notification_email_list,
            enabled=bool(enabled),
            dashboard_url=row.dashboard_url or default_url,
        )


async def send_task_notification(
    task: TaskInfo,
    kind: str,
    company_id: Optional[int],
) -> NotificationResult:
    """
    タスク通知メールを送信

    Args:
        task: 通知対象のタスク
        kind: "create" / "complete" / "delete"
        company_id: テナントID（None はレガシーのグローバル設定）

    Returns:
        NotificationResult。前提条件が欠けている場合は success=True, sent=False
    """
    if kind not in NOTIFICATION_SUBJECTS:
        return NotificationResult(success=False, error=f"Unknown notification kind: {kind}")

    try:
        config = await asyncio.to_thread(_load_config, company_id, kind)
    except Exception as e:
        logger.error("Failed to load notification settings", error=type(e).__name__, exc_info=True)
        return NotificationResult(success=False, error=str(e))

    if not config.api_key:
        logger.debug("Resend API key not configured, skipping notification")
        return NotificationResult(success=True)
    if not config.enabled:
        logger.debug("Notification disabled", kind=kind)
        return NotificationResult(success=True)
    if not config.recipients:
        logger.debug("No notification emails configured")
        return NotificationResult(success=True)

    settings = get_settings()
    payload = {
        "from": settings.NOTIFICATION_FROM,
        "to": config.recipients,
        "subject": build_subject(kind),
        "html": build_email_html(task, kind, config.dashboard_url),
    }

    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=EMAIL_TIMEOUT_SECONDS) as client:
            response = await client.post(
                settings.RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {config.api_key}"},
            )
    except httpx.HTTPError as e:
        logger.warning("Notification email request failed", task_id=task.id, error=type(e).__name__)
        return NotificationResult(success=False, error=str(e))

    log_external_api_call(
        logger,
        service="resend",
        method="POST",
        endpoint="/emails",
        status_code=response.status_code,
        duration_ms=round((time.monotonic() - start) * 1000, 1),
    )

    if response.status_code >= 400:
        logger.warning(
            "Notification email rejected",
            task_id=task.id,
            kind=kind,
            status_code=response.status_code,
        )
        return NotificationResult(success=False, error=f"Resend API error: {response.status_code}")

    logger.info("Notification sent", task_id=task.id, kind=kind, recipients=len(config.recipients))
    return NotificationResult(success=True, sent=True)


async def _run_notification(task: TaskInfo, kind: str, company_id: Optional[int]) -> None:
    async with TenantContext(company_id):
        result = await send_task_notification(task, kind, company_id)
    if not result.success:
        logger.warning("Task notification failed", task_id=task.id, kind=kind, error=result.error)


def _on_notification_done(fut: "asyncio.Task[Any]") -> None:
    _pending_notifications.discard(fut)
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.error(
            "Unhandled error in task notification",
            error=type(exc).__name__,
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def dispatch_task_notification(
    task: TaskInfo,
    kind: str,
    company_id: Optional[int],
) -> "asyncio.Task[Any]":
    """
    通知をバックグラウンドで送信（完了を待たない）

    実行中のイベントループ上から呼ぶこと。
    """
    fut = asyncio.get_running_loop().create_task(_run_notification(task, kind, company_id))
    _pending_notifications.add(fut)
    fut.add_done_callback(_on_notification_done)
    return fut


async def wait_for_pending_notifications() -> None:
    """実行中の通知の完了を待つ（シャットダウン時・テスト用）"""
    if _pending_notifications:
        await asyncio.gather(*list(_pending_notifications), return_exceptions=True)
