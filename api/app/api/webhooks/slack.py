"""
Slack Events API Webhook

POST /webhook/slack

テナントはペイロードの team_id と登録済みワークスペースの対応で特定する。
Slack はリトライを繰り返すため、未登録ワークスペースにも 200 を返す。
"""

import asyncio

from fastapi import APIRouter, Request

from api.app.api.webhooks.common import parse_json_body
from api.app.limiter import limiter
from taskcatcher.channels import slack
from taskcatcher.channels.base import NormalizedMessage
from taskcatcher.db import async_session_scope
from taskcatcher.exceptions import AuthenticationFailure, MalformedRequest
from taskcatcher.ingestion import ingest_message
from taskcatcher.logging import get_logger
from taskcatcher.store import settings as settings_store
from taskcatcher.tenant import TenantContext

logger = get_logger(__name__)

router = APIRouter(prefix="/slack", tags=["webhook"])


@router.post("")
@limiter.exempt
async def slack_webhook(request: Request):
    body = await request.body()
    payload = parse_json_body(body)

    if slack.is_challenge(payload):
        logger.info("Slack URL verification challenge")
        return slack.build_challenge_response(payload)

    team_id = payload.get("team_id")
    if not team_id:
        raise MalformedRequest("No team_id")

    async with async_session_scope() as session:
        workspace = await asyncio.to_thread(settings_store.get_active_slack_workspace, session, str(team_id))
        if workspace is None:
            logger.warning("Unknown Slack workspace", team_id=team_id)
            return {"ok": True}

        if not slack.verify_slack_signature(
            workspace.signing_secret,
            request.headers.get(slack.SIGNATURE_HEADER),
            request.headers.get(slack.TIMESTAMP_HEADER),
            body,
        ):
            logger.warning("Invalid Slack signature", team_id=team_id)
            raise AuthenticationFailure("Invalid signature")

        company_id = workspace.company_id
        bot_token = workspace.bot_token

        async with TenantContext(company_id):
            message = slack.parse_slack_event(payload)
            if message is None:
                return {"ok": True}

            async def resolve_sender(msg: NormalizedMessage) -> str:
                return await slack.fetch_user_name(bot_token, msg.sender_id)

            await ingest_message(
                session,
                message,
                company_id,
                resolve_sender=resolve_sender,
                workspace_id=str(team_id),
            )

    return {"ok": True}
