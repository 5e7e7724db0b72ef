"""
taskcatcher/notification.py のテスト

前提条件（APIキー・通知先・通知設定）が欠けている場合は何もせず成功扱い。
送信は httpx をモックして確認する。
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from taskcatcher import notification
from taskcatcher.notification import (
    NotificationResult,
    TaskInfo,
    build_email_html,
    build_subject,
    dispatch_task_notification,
    send_task_notification,
    wait_for_pending_notifications,
)
from taskcatcher.store import settings as settings_store

TASK = TaskInfo(id=1, content="見積もり作成", sender_name="山田", source="chatwork", priority="high")


def _configure(session, company_id, **fields):
    settings_store.upsert_company_settings(session, company_id, **fields)


def _mock_client(status_code=200):
    response = MagicMock(status_code=status_code)
    client = MagicMock()
    client.post = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


class TestBuildEmail:
    def test_subject(self):
        assert build_subject("create") == "[たすきゃっちゃー] 新しいタスクが登録されました"
        assert build_subject("complete") == "[たすきゃっちゃー] タスクが完了しました"
        assert build_subject("delete") == "[たすきゃっちゃー] タスクが削除されました"

    def test_html_escapes_user_content(self):
        task = TaskInfo(id=1, content="<script>alert(1)</script>", sender_name="<b>x</b>", source="slack", priority="low")
        body = build_email_html(task, "create", "https://dashboard.example.com/")
        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert "&lt;b&gt;x&lt;/b&gt;" in body
        assert "Slack" in body
        assert "低" in body

    def test_empty_sender_is_unknown(self):
        task = TaskInfo(id=1, content="x", sender_name="", source="line", priority="medium")
        assert "不明" in build_email_html(task, "delete", "https://d.example.com/")


class TestSendTaskNotification:
    """send_task_notification のテスト"""

    async def test_no_settings_row_is_noop(self, db_engine):
        with patch("taskcatcher.notification.httpx.AsyncClient") as mock_client:
            result = await send_task_notification(TASK, "create", 999)
        assert result == NotificationResult(success=True, sent=False)
        mock_client.assert_not_called()

    async def test_missing_api_key_is_noop(self, seed, db_session):
        _configure(db_session, seed["company_a"], notification_emails="a@example.com")
        db_session.commit()
        with patch("taskcatcher.notification.httpx.AsyncClient") as mock_client:
            result = await send_task_notification(TASK, "create", seed["company_a"])
        assert result.success is True
        assert result.sent is False
        mock_client.assert_not_called()

    async def test_missing_recipients_is_noop(self, seed, db_session):
        _configure(db_session, seed["company_a"], resend_api_key="re_test", notification_emails=" , ")
        db_session.commit()
        with patch("taskcatcher.notification.httpx.AsyncClient") as mock_client:
            result = await send_task_notification(TASK, "create", seed["company_a"])
        assert result.sent is False
        mock_client.assert_not_called()

    async def test_disabled_kind_is_noop(self, seed, db_session):
        """削除通知はデフォルト無効"""
        _configure(db_session, seed["company_a"], resend_api_key="re_test", notification_emails="a@example.com")
        db_session.commit()
        with patch("taskcatcher.notification.httpx.AsyncClient") as mock_client:
            result = await send_task_notification(TASK, "delete", seed["company_a"])
        assert result.sent is False
        mock_client.assert_not_called()

    async def test_sends_email(self, seed, db_session):
        _configure(
            db_session,
            seed["company_a"],
            resend_api_key="re_test",
            notification_emails="a@example.com, b@example.com",
        )
        db_session.commit()
        client = _mock_client(200)
        with patch("taskcatcher.notification.httpx.AsyncClient", return_value=client):
            result = await send_task_notification(TASK, "create", seed["company_a"])

        assert result == NotificationResult(success=True, sent=True)
        _, kwargs = client.post.call_args
        assert kwargs["json"]["to"] == ["a@example.com", "b@example.com"]
        assert kwargs["json"]["subject"] == build_subject("create")
        assert kwargs["headers"]["Authorization"] == "Bearer re_test"

    async def test_api_error_is_reported_not_raised(self, seed, db_session):
        _configure(db_session, seed["company_a"], resend_api_key="re_test", notification_emails="a@example.com")
        db_session.commit()
        with patch("taskcatcher.notification.httpx.AsyncClient", return_value=_mock_client(500)):
            result = await send_task_notification(TASK, "create", seed["company_a"])
        assert result.success is False
        assert "500" in result.error

    async def test_network_error_is_reported_not_raised(self, seed, db_session):
        _configure(db_session, seed["company_a"], resend_api_key="re_test", notification_emails="a@example.com")
        db_session.commit()
        client = _mock_client()
        client.post = AsyncMock(side_effect=httpx.ConnectError("boom"))
        with patch("taskcatcher.notification.httpx.AsyncClient", return_value=client):
            result = await send_task_notification(TASK, "create", seed["company_a"])
        assert result.success is False

    async def test_unknown_kind(self):
        result = await send_task_notification(TASK, "archive", 1)
        assert result.success is False


class TestDispatch:
    """バックグラウンド送信のテスト"""

    async def test_dispatch_does_not_block_and_is_tracked(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_send(task, kind, company_id):
            started.set()
            await release.wait()
            return NotificationResult(success=True, sent=True)

        with patch("taskcatcher.notification.send_task_notification", side_effect=slow_send):
            fut = dispatch_task_notification(TASK, "create", 1)
            await started.wait()
            assert fut in notification._pending_notifications
            release.set()
            await wait_for_pending_notifications()

        assert fut.done()
        assert fut not in notification._pending_notifications

    async def test_failure_is_swallowed(self):
        with patch(
            "taskcatcher.notification.send_task_notification",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            fut = dispatch_task_notification(TASK, "create", 1)
            await wait_for_pending_notifications()
        assert isinstance(fut.exception(), RuntimeError)
        assert fut not in notification._pending_notifications
