"""
Chatwork Webhook

POST /webhook/chatwork/{token}  テナント別（推奨）
POST /webhook/chatwork          レガシー（グローバル設定、非推奨）

応答:
    {"success": true, "taskId": 1}                   タスク登録
    {"success": true, "message": "Room not monitored"} など
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Request
from sqlalchemy.orm import Session

from api.app.api.webhooks.common import parse_json_body, resolve_company
from api.app.limiter import limiter
from taskcatcher.channels import chatwork
from taskcatcher.channels.base import NormalizedMessage
from taskcatcher.db import async_session_scope
from taskcatcher.exceptions import AuthenticationFailure, ConfigurationMissing
from taskcatcher.ingestion import IngestOutcome, ingest_message
from taskcatcher.logging import get_logger
from taskcatcher.store import settings as settings_store
from taskcatcher.tenant import TenantContext

logger = get_logger(__name__)

router = APIRouter(prefix="/chatwork", tags=["webhook"])

_OUTCOME_MESSAGES = {
    IngestOutcome.NOT_MONITORED: "Room not monitored",
    IngestOutcome.NOT_A_TASK: "Message is not a task",
    IngestOutcome.DUPLICATE: "Duplicate message",
}


async def _handle_chatwork(
    session: Session,
    body: bytes,
    signature: str,
    company_id: Optional[int],
) -> dict:
    settings_row = await asyncio.to_thread(settings_store.get_company_settings, session, company_id)
    if settings_row is None or not settings_row.chatwork_webhook_token:
        logger.error("Chatwork webhook token not configured", company_id=company_id)
        raise ConfigurationMissing("Webhook not configured", platform="chatwork")

    if not chatwork.verify_chatwork_signature(body, signature, settings_row.chatwork_webhook_token):
        logger.warning("Invalid Chatwork signature", company_id=company_id)
        raise AuthenticationFailure("Invalid signature")

    payload = parse_json_body(body)
    message = chatwork.parse_chatwork_event(payload)
    if message is None:
        logger.debug("Not message_created, skip", event_type=payload.get("webhook_event_type"))
        return {"success": True}

    api_token = settings_row.chatwork_api_token

    async def resolve_sender(msg: NormalizedMessage) -> str:
        return await chatwork.fetch_sender_name(api_token, msg.room_id, msg.message_id, msg.sender_id)

    result = await ingest_message(
        session,
        message,
        company_id,
        resolve_sender=resolve_sender,
    )
    if result.created:
        return {"success": True, "taskId": result.task.id}
    return {"success": True, "message": _OUTCOME_MESSAGES[result.outcome]}


@router.post("/{token}")
@limiter.exempt
async def chatwork_webhook(token: str, request: Request):
    """テナント別 Chatwork Webhook"""
    body = await request.body()
    signature = request.headers.get(chatwork.SIGNATURE_HEADER, "")

    async with async_session_scope() as session:
        company = await resolve_company(session, token, "chatwork")
        async with TenantContext(company.id):
            return await _handle_chatwork(session, body, signature, company.id)


@router.post("")
@limiter.exempt
async def chatwork_webhook_legacy(request: Request):
    """
    レガシー Chatwork Webhook（非推奨）

    company_id が NULL のグローバル設定とルームを使う。
    新規導入は /webhook/chatwork/{token} を使うこと。
    """
    body = await request.body()
    signature = request.headers.get(chatwork.SIGNATURE_HEADER, "")
    logger.warning("Deprecated global Chatwork webhook called")

    async with async_session_scope() as session:
        return await _handle_chatwork(session, body, signature, None)
