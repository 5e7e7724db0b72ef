"""
LINE チャネル（Messaging API Webhook）

1リクエストに複数イベントが入る。グループのテキストメッセージのみ
タスク抽出の対象で、グループ参加（join）はルームを承認待ちで登録する。
"""

import hashlib
import hmac
import base64
import time
from typing import Any, Dict, Optional, Union

import httpx

from taskcatcher.channels.base import NormalizedMessage, constant_time_equals, to_bytes
from taskcatcher.config import get_settings
from taskcatcher.logging import get_logger, log_external_api_call

logger = get_logger(__name__)

SOURCE = "line"
SIGNATURE_HEADER = "X-Line-Signature"


def verify_line_signature(
    body: Union[str, bytes],
    signature: Optional[str],
    channel_secret: str,
) -> bool:
    """
    X-Line-Signature を検証

    signature = Base64(HMAC-SHA256(channel_secret, body))
    """
    if not channel_secret or not signature:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), to_bytes(body), hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return constant_time_equals(expected, signature)


def is_group_event(event: Dict[str, Any]) -> bool:
    source = event.get("source") or {}
    return source.get("type") == "group" and bool(source.get("groupId"))


def is_join_event(event: Dict[str, Any]) -> bool:
    return event.get("type") == "join"


def is_text_message_event(event: Dict[str, Any]) -> bool:
    message = event.get("message") or {}
    return event.get("type") == "message" and message.get("type") == "text"


def parse_line_event(event: Dict[str, Any]) -> Optional[NormalizedMessage]:
    """グループのテキストメッセージを NormalizedMessage に変換"""
    if not isinstance(event, dict):
        return None
    if not is_text_message_event(event) or not is_group_event(event):
        return None

    message = event["message"]
    if not message.get("id"):
        return None

    source = event["source"]
    extra = {}
    if event.get("replyToken"):
        extra["reply_token"] = event["replyToken"]

    return NormalizedMessage(
        room_id=source["groupId"],
        message_id=str(message["id"]),
        text=message.get("text") or "",
        sender_id=source.get("userId") or "unknown",
        source=SOURCE,
        extra=extra,
    )


async def _get_json(path: str, access_token: str) -> Optional[Dict[str, Any]]:
    settings = get_settings()
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=settings.EXTERNAL_API_TIMEOUT) as client:
            response = await client.get(
                f"{settings.LINE_API_URL}{path}",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        log_external_api_call(
            logger,
            service=SOURCE,
            method="GET",
            endpoint=path,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )
        if response.status_code != 200:
            return None
        return response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("LINE API request failed", endpoint=path, error=type(e).__name__)
        return None


async def fetch_member_display_name(
    group_id: str,
    user_id: str,
    access_token: Optional[str],
) -> str:
    """グループメンバーの表示名（取得できなければユーザーIDのまま）"""
    if not access_token or user_id == "unknown":
        return user_id
    profile = await _get_json(f"/group/{group_id}/member/{user_id}", access_token)
    return (profile or {}).get("displayName") or user_id


async def fetch_group_name(group_id: str, access_token: Optional[str]) -> str:
    """グループ名（取得できなければグループIDのまま）"""
    if not access_token:
        return group_id
    summary = await _get_json(f"/group/{group_id}/summary", access_token)
    return (summary or {}).get("groupName") or group_id
