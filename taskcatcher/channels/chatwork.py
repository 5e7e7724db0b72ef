"""
Chatwork チャネル

Webhook の署名検証、ペイロードの正規化、送信者名・ルーム一覧の取得。

Chatwork Webhook reference:
  https://developer.chatwork.com/docs/webhook
"""

import time
from typing import Any, Dict, List, Optional, Union

import httpx

from taskcatcher.channels.base import (
    NormalizedMessage,
    constant_time_equals,
    decode_base64_key,
    hmac_sha256_base64,
)
from taskcatcher.config import get_settings
from taskcatcher.logging import get_logger, log_external_api_call

logger = get_logger(__name__)

SOURCE = "chatwork"
SIGNATURE_HEADER = "X-ChatWorkWebhookSignature"


def verify_chatwork_signature(
    body: Union[str, bytes],
    signature: Optional[str],
    webhook_token: str,
) -> bool:
    """
    ChatWork Webhookの署名を検証

    Webhook 登録時に発行されたトークンを Base64 デコードした値を鍵に、
    リクエストボディの HMAC-SHA256 を計算し、Base64 で比較する。

    Args:
        body: リクエストボディ（生バイト列）
        signature: X-ChatWorkWebhookSignature ヘッダーの値
        webhook_token: Webhook 設定画面のトークン

    Returns:
        True: 検証OK
    """
    key = decode_base64_key(webhook_token)
    if key is None or not signature:
        return False
    expected = hmac_sha256_base64(key, body)
    return constant_time_equals(expected, signature)


def parse_chatwork_event(payload: Dict[str, Any]) -> Optional[NormalizedMessage]:
    """
    Webhookペイロードを NormalizedMessage に変換

    message_created 以外のイベント（メンション通知等）は None。
    """
    if not isinstance(payload, dict):
        return None
    if payload.get("webhook_event_type") != "message_created":
        return None

    event = payload.get("webhook_event") or {}
    if event.get("room_id") is None or event.get("message_id") is None:
        return None

    return NormalizedMessage(
        room_id=str(event["room_id"]),
        message_id=str(event["message_id"]),
        text=event.get("body") or "",
        sender_id=str(event.get("account_id", "")),
        source=SOURCE,
    )


def default_sender_name(account_id: str) -> str:
    return f"User {account_id}"


async def fetch_sender_name(
    api_token: str,
    room_id: str,
    message_id: str,
    account_id: str,
) -> str:
    """
    Chatwork API でメッセージを取得し、送信者名を返す

    APIトークン未設定・API失敗時は "User {account_id}" を返す。
    """
    fallback = default_sender_name(account_id)
    if not api_token:
        return fallback

    settings = get_settings()
    endpoint = f"/rooms/{room_id}/messages/{message_id}"
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=settings.EXTERNAL_API_TIMEOUT) as client:
            response = await client.get(
                f"{settings.CHATWORK_API_URL}{endpoint}",
                headers={"X-ChatWorkToken": api_token},
            )
        log_external_api_call(
            logger,
            service=SOURCE,
            method="GET",
            endpoint=endpoint,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )
        if response.status_code != 200:
            return fallback
        account = (response.json() or {}).get("account") or {}
        return account.get("name") or fallback
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Failed to get Chatwork sender", error=type(e).__name__)
        return fallback


async def fetch_rooms(api_token: str) -> Optional[List[Dict[str, str]]]:
    """
    Chatwork API で参加中のルーム一覧を取得

    Returns:
        [{"room_id": "123", "name": "営業部"}, ...]。API失敗時は None
    """
    if not api_token:
        return None

    settings = get_settings()
    endpoint = "/rooms"
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=settings.EXTERNAL_API_TIMEOUT) as client:
            response = await client.get(
                f"{settings.CHATWORK_API_URL}{endpoint}",
                headers={"X-ChatWorkToken": api_token},
            )
        log_external_api_call(
            logger,
            service=SOURCE,
            method="GET",
            endpoint=endpoint,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )
        if response.status_code != 200:
            return None
        rooms = response.json() or []
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Failed to get Chatwork rooms", error=type(e).__name__)
        return None

    return [
        {"room_id": str(room["room_id"]), "name": room.get("name") or ""}
        for room in rooms
        if isinstance(room, dict) and room.get("room_id") is not None
    ]
