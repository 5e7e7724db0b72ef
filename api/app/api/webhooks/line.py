"""
LINE Messaging API Webhook

POST /webhook/line/{token}

- join（グループ参加）: グループを承認待ち（is_active=False）で登録
- グループのテキストメッセージ: タスク抽出
それ以外のイベント（1:1トーク、スタンプ等）は無視する。
"""

import asyncio

from fastapi import APIRouter, Request

from api.app.api.webhooks.common import parse_json_body, resolve_company
from api.app.limiter import limiter
from taskcatcher.channels import line
from taskcatcher.channels.base import NormalizedMessage
from taskcatcher.db import async_session_scope
from taskcatcher.exceptions import AuthenticationFailure, ConfigurationMissing
from taskcatcher.ingestion import ingest_message
from taskcatcher.logging import get_logger
from taskcatcher.store import rooms as rooms_store
from taskcatcher.store import settings as settings_store
from taskcatcher.tenant import TenantContext

logger = get_logger(__name__)

router = APIRouter(prefix="/line", tags=["webhook"])


def _register_group(session, group_id: str, group_name: str, company_id: int) -> None:
    rooms_store.register_pending_room(session, line.SOURCE, group_id, company_id, group_name)
    session.commit()


@router.post("/{token}")
@limiter.exempt
async def line_webhook(token: str, request: Request):
    """テナント別 LINE Webhook"""
    body = await request.body()
    signature = request.headers.get(line.SIGNATURE_HEADER, "")

    async with async_session_scope() as session:
        company = await resolve_company(session, token, "line")

        async with TenantContext(company.id):
            settings_row = await asyncio.to_thread(
                settings_store.get_company_settings, session, company.id
            )
            if settings_row is None or not settings_row.line_channel_secret:
                logger.error("LINE channel secret not configured")
                raise ConfigurationMissing("Webhook not configured", platform="line")

            if not line.verify_line_signature(body, signature, settings_row.line_channel_secret):
                logger.warning("Invalid LINE signature")
                raise AuthenticationFailure("Invalid signature")

            payload = parse_json_body(body)
            access_token = settings_row.line_access_token

            async def resolve_sender(msg: NormalizedMessage) -> str:
                return await line.fetch_member_display_name(msg.room_id, msg.sender_id, access_token)

            events = payload.get("events") or []
            for event in events:
                if not isinstance(event, dict):
                    continue

                if line.is_join_event(event) and line.is_group_event(event):
                    group_id = event["source"]["groupId"]
                    group_name = await line.fetch_group_name(group_id, access_token)
                    await asyncio.to_thread(_register_group, session, group_id, group_name, company.id)
                    logger.info("Group registered (pending approval)", group_id=group_id)
                    continue

                message = line.parse_line_event(event)
                if message is None:
                    continue

                await ingest_message(
                    session,
                    message,
                    company.id,
                    resolve_sender=resolve_sender,
                )

    return {"success": True}
