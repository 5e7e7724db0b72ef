"""
Microsoft Teams Outgoing Webhook

POST /webhook/teams/{token}

Teams は5秒以内の応答を要求し、text が空でない場合はボットの返信として表示する。
タスク登録時のみ確認メッセージを返す。
"""

import asyncio

from fastapi import APIRouter, Request

from api.app.api.webhooks.common import parse_json_body, resolve_company
from api.app.limiter import limiter
from taskcatcher.channels import teams
from taskcatcher.config import get_settings
from taskcatcher.db import async_session_scope
from taskcatcher.exceptions import AuthenticationFailure, ConfigurationMissing
from taskcatcher.ingestion import ingest_message
from taskcatcher.logging import get_logger
from taskcatcher.store import settings as settings_store
from taskcatcher.tenant import TenantContext

logger = get_logger(__name__)

router = APIRouter(prefix="/teams", tags=["webhook"])


def build_task_created_text(dashboard_url: str) -> str:
    return f"タスクの登録が完了しました。\n{dashboard_url}"


@router.post("/{token}")
@limiter.exempt
async def teams_webhook(token: str, request: Request):
    """テナント別 Teams Outgoing Webhook"""
    body = await request.body()
    auth_header = request.headers.get("Authorization", "")

    async with async_session_scope() as session:
        company = await resolve_company(session, token, "teams")

        async with TenantContext(company.id):
            settings_row = await asyncio.to_thread(
                settings_store.get_company_settings, session, company.id
            )
            if settings_row is None or not settings_row.teams_webhook_secret:
                logger.error("Teams webhook secret not configured")
                raise ConfigurationMissing("Webhook not configured", platform="teams")

            if not teams.verify_teams_signature(body, auth_header, settings_row.teams_webhook_secret):
                logger.warning("Invalid Teams signature")
                raise AuthenticationFailure("Invalid signature")

            payload = parse_json_body(body)
            message = teams.parse_teams_activity(payload)
            if message is None:
                logger.debug("Not a message activity, skip", activity_type=payload.get("type"))
                return teams.build_teams_reply("")

            result = await ingest_message(session, message, company.id)
            if not result.created:
                return teams.build_teams_reply("")

            dashboard_url = settings_row.dashboard_url or get_settings().DASHBOARD_URL
            return teams.build_teams_reply(build_task_created_text(dashboard_url))
