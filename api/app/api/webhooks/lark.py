"""
Lark Event Subscription Webhook

POST /webhook/lark

URLにテナントトークンを含まないため、設定行は以下の順で特定する:
    1. 暗号化ペイロード: 復号できた Encrypt Key の持ち主
    2. 平文ペイロード: Verification Token が一致する行

URL検証チャレンジは署名・トークン検証より前に応答する。
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Request

from api.app.api.webhooks.common import parse_json_body
from api.app.limiter import limiter
from taskcatcher.channels import lark
from taskcatcher.db import async_session_scope
from taskcatcher.exceptions import AuthenticationFailure, ConfigurationMissing, MalformedRequest
from taskcatcher.ingestion import ingest_message
from taskcatcher.logging import get_logger
from taskcatcher.models import CompanySettings
from taskcatcher.store import settings as settings_store
from taskcatcher.tenant import TenantContext

logger = get_logger(__name__)

router = APIRouter(prefix="/lark", tags=["webhook"])


def _decrypt_with_candidates(
    encrypted: str,
    candidates: List[CompanySettings],
) -> Tuple[Optional[Dict[str, Any]], Optional[CompanySettings]]:
    for row in candidates:
        if not row.lark_encrypt_key:
            continue
        decrypted = lark.decrypt_lark_payload(encrypted, row.lark_encrypt_key)
        if decrypted is not None:
            return decrypted, row
    return None, None


def _received_token(payload: Dict[str, Any]) -> str:
    header = payload.get("header")
    if isinstance(header, dict) and header.get("token"):
        return str(header["token"])
    return str(payload.get("token") or "")


@router.post("")
@limiter.exempt
async def lark_webhook(request: Request):
    """Lark イベント受信"""
    body = await request.body()
    timestamp = request.headers.get(lark.TIMESTAMP_HEADER, "")
    nonce = request.headers.get(lark.NONCE_HEADER, "")
    signature = request.headers.get(lark.SIGNATURE_HEADER, "")

    payload = parse_json_body(body)

    async with async_session_scope() as session:
        candidates = await asyncio.to_thread(settings_store.list_lark_settings, session)
        settings_row: Optional[CompanySettings] = None

        if payload.get("encrypt"):
            if not any(row.lark_encrypt_key for row in candidates):
                logger.error("Encrypted Lark payload but no encrypt key configured")
                raise ConfigurationMissing("Webhook not configured", platform="lark")
            payload, settings_row = _decrypt_with_candidates(str(payload["encrypt"]), candidates)
            if payload is None:
                logger.warning("Lark payload could not be decrypted with any key")
                raise MalformedRequest("Failed to decrypt payload")

        # チャレンジは最優先
        if lark.is_challenge(payload):
            logger.info("Lark URL verification challenge")
            return lark.build_challenge_response(payload)

        if settings_row is None:
            settings_row = await asyncio.to_thread(
                settings_store.find_settings_by_lark_token, session, _received_token(payload)
            )
            if settings_row is None:
                if not any(row.lark_verification_token for row in candidates):
                    logger.error("Lark verification token not configured")
                    raise ConfigurationMissing("Webhook not configured", platform="lark")
                logger.warning("Invalid Lark token")
                raise AuthenticationFailure("Invalid token")

        if not settings_row.lark_verification_token:
            logger.error("Lark verification token not configured", company_id=settings_row.company_id)
            raise ConfigurationMissing("Webhook not configured", platform="lark")

        if settings_row.lark_encrypt_key and signature:
            if not lark.verify_lark_signature(timestamp, nonce, body, signature, settings_row.lark_encrypt_key):
                logger.warning("Invalid Lark signature", company_id=settings_row.company_id)
                raise AuthenticationFailure("Invalid signature")

        if not lark.verify_lark_token(payload, settings_row.lark_verification_token):
            logger.warning("Invalid Lark token", company_id=settings_row.company_id)
            raise AuthenticationFailure("Invalid token")

        company_id = settings_row.company_id
        async with TenantContext(company_id):
            message = lark.parse_lark_event(payload)
            if message is None:
                logger.debug("Not a message receive event, skip")
                return {"success": True}

            await ingest_message(session, message, company_id)

    return {"success": True}
