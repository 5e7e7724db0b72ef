"""
Webhookルート共通処理

ボディの解析とトークンによるテナント特定。
"""

import asyncio
import json
from typing import Any, Dict

from sqlalchemy.orm import Session

from taskcatcher.exceptions import MalformedRequest, NotFound
from taskcatcher.logging import get_logger, mask_token
from taskcatcher.models import Company
from taskcatcher.store import companies as companies_store

logger = get_logger(__name__)


def parse_json_body(body: bytes) -> Dict[str, Any]:
    """リクエストボディを JSON オブジェクトとして解析（不正なら 400）"""
    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise MalformedRequest("Invalid JSON")
    if not isinstance(payload, dict):
        raise MalformedRequest("Invalid JSON")
    return payload


async def resolve_company(session: Session, token: str, platform: str) -> Company:
    """
    Webhook URL のトークンから企業を特定

    Raises:
        NotFound: 未登録または無効化された企業
    """
    company = await asyncio.to_thread(companies_store.get_company_by_webhook_token, session, token)
    if company is None:
        logger.warning("Invalid webhook token", platform=platform, token=mask_token(token))
        raise NotFound("Invalid webhook token")
    logger.info("Company identified", platform=platform, company_id=company.id)
    return company
