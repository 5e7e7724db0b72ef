"""
Microsoft Teams チャネル（Outgoing Webhook）

Authorization ヘッダー形式: "HMAC <base64_signature>"
応答は5秒以内に {"type": "message", "text": ...} を返す必要がある。
"""

import re
from typing import Any, Dict, Optional, Union

from taskcatcher.channels.base import (
    NormalizedMessage,
    constant_time_equals,
    decode_base64_key,
    hmac_sha256_base64,
)

SOURCE = "teams"

_AUTH_HEADER_PATTERN = re.compile(r"^HMAC\s+(.+)$", re.IGNORECASE)
_MENTION_PATTERN = re.compile(r"<at>.*?</at>", re.IGNORECASE | re.DOTALL)
_HTML_TAG_PATTERN = re.compile(r"<[^>]+>")

# &amp; は最後に置換する（"&amp;lt;" を "<" にしないため）
_HTML_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&amp;", "&"),
)


def verify_teams_signature(
    body: Union[str, bytes],
    auth_header: Optional[str],
    secret: str,
) -> bool:
    """
    Teams Outgoing Webhook の署名を検証

    Args:
        body: リクエストボディ（生バイト列）
        auth_header: Authorization ヘッダーの値
        secret: Outgoing Webhook 作成時のセキュリティトークン（Base64）

    Returns:
        True: 検証OK
    """
    if not auth_header:
        return False
    match = _AUTH_HEADER_PATTERN.match(auth_header.strip())
    if not match:
        return False

    key = decode_base64_key(secret)
    if key is None:
        return False

    expected = hmac_sha256_base64(key, body)
    return constant_time_equals(expected, match.group(1).strip())


def clean_teams_text(text: str) -> str:
    """
    Teams メッセージ本文を正規化

    - <at>BotName</at> メンションを除去
    - 残りのHTMLタグを除去
    - 主要なHTMLエンティティをデコード
    """
    if not text:
        return ""
    cleaned = _MENTION_PATTERN.sub("", text)
    cleaned = _HTML_TAG_PATTERN.sub("", cleaned)
    for entity, char in _HTML_ENTITIES:
        cleaned = cleaned.replace(entity, char)
    return cleaned.strip()


def normalize_conversation_id(conversation_id: str) -> str:
    """
    conversation.id からチャネルIDを取り出す

    "19:abc@thread.tacv2;messageid=123" のようにスレッド情報が
    付与されるため、最初の ";" より前を使う。
    """
    return conversation_id.split(";", 1)[0]


def parse_teams_activity(payload: Dict[str, Any]) -> Optional[NormalizedMessage]:
    """Activity を NormalizedMessage に変換（type が message 以外は None）"""
    if not isinstance(payload, dict) or payload.get("type") != "message":
        return None

    conversation = payload.get("conversation") or {}
    conversation_id = conversation.get("id")
    if not conversation_id or not payload.get("id"):
        return None

    sender = payload.get("from") or {}
    extra: Dict[str, Any] = {}
    if payload.get("serviceUrl"):
        extra["service_url"] = payload["serviceUrl"]

    return NormalizedMessage(
        room_id=normalize_conversation_id(conversation_id),
        message_id=str(payload["id"]),
        text=clean_teams_text(payload.get("text") or ""),
        sender_id=str(sender.get("id", "")),
        sender_name=sender.get("name") or "Unknown",
        source=SOURCE,
        extra=extra,
    )


def build_teams_reply(text: str = "") -> Dict[str, str]:
    """Outgoing Webhook の応答（text が空なら返信なし）"""
    return {"type": "message", "text": text}
