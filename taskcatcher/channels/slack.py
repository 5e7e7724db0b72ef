"""
Slack チャネル（Events API）

署名方式:
  basestring = "v0:{timestamp}:{request_body}"
  signature  = "v0=" + hex(HMAC-SHA256(signing_secret, basestring))

参考: https://api.slack.com/authentication/verifying-requests-from-slack
"""

import hashlib
import hmac
import re
import time
from typing import Any, Dict, Optional, Union

import httpx

from taskcatcher.channels.base import NormalizedMessage, to_bytes
from taskcatcher.config import get_settings
from taskcatcher.logging import get_logger, log_external_api_call

logger = get_logger(__name__)

SOURCE = "slack"
TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_HEADER = "X-Slack-Signature"

# リプレイ攻撃防止: 5分以上古いリクエストを拒否
MAX_TIMESTAMP_AGE_SECONDS = 300

_MENTION_PATTERN = re.compile(r"<@[A-Z0-9]+(\|[^>]+)?>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def is_challenge(payload: Dict[str, Any]) -> bool:
    """URL検証チャレンジかどうか"""
    return (
        isinstance(payload, dict)
        and payload.get("type") == "url_verification"
        and bool(payload.get("challenge"))
    )


def build_challenge_response(payload: Dict[str, Any]) -> Dict[str, str]:
    return {"challenge": payload["challenge"]}


def verify_slack_signature(
    signing_secret: str,
    signature: Optional[str],
    timestamp: Optional[str],
    body: Union[str, bytes],
    now: Optional[float] = None,
) -> bool:
    """
    Slackリクエストの署名を検証する。

    Args:
        signing_secret: アプリの Signing Secret
        signature: X-Slack-Signature ヘッダー値（"v0=..." 形式）
        timestamp: X-Slack-Request-Timestamp ヘッダー値（UNIX秒）
        body: HTTPリクエストボディ（生バイト列）
        now: 現在時刻（テスト用）

    Returns:
        True: 署名が正当
        False: 署名が不正、タイムスタンプが古い、またはパラメータが不正
    """
    if not signing_secret or not signature or not timestamp:
        return False

    try:
        request_ts = int(timestamp)
    except (ValueError, TypeError):
        logger.warning("Slack webhook timestamp invalid")
        return False

    current_ts = int(now if now is not None else time.time())
    if request_ts < current_ts - MAX_TIMESTAMP_AGE_SECONDS:
        logger.warning(
            "Slack webhook timestamp too old",
            delta_seconds=current_ts - request_ts,
        )
        return False

    basestring = b"v0:" + to_bytes(timestamp) + b":" + to_bytes(body)
    expected = "v0=" + hmac.new(
        signing_secret.encode("utf-8"),
        basestring,
        hashlib.sha256,
    ).hexdigest()

    received = to_bytes(signature)
    if len(received) != len(expected):
        return False
    return hmac.compare_digest(expected.encode("ascii"), received)


def strip_slack_mentions(text: str) -> str:
    """<@U123ABC> / <@U123ABC|username> 形式のメンションを除去し、空白を詰める"""
    return _WHITESPACE_PATTERN.sub(" ", _MENTION_PATTERN.sub("", text)).strip()


def parse_slack_event(payload: Dict[str, Any]) -> Optional[NormalizedMessage]:
    """
    通常のメッセージイベントを NormalizedMessage に変換

    サブタイプ付き（編集・削除・参加通知等）とボットの発言は None。
    """
    if not isinstance(payload, dict) or payload.get("type") != "event_callback":
        return None

    event = payload.get("event") or {}
    if event.get("type") != "message":
        return None
    if event.get("subtype") or event.get("bot_id"):
        return None
    if not event.get("text") or not event.get("channel") or not event.get("ts"):
        return None

    return NormalizedMessage(
        room_id=str(event["channel"]),
        message_id=str(event["ts"]),
        text=strip_slack_mentions(event["text"]),
        sender_id=str(event.get("user", "")),
        source=SOURCE,
        extra={
            "team_id": payload.get("team_id", ""),
            "channel_type": event.get("channel_type") or "channel",
        },
    )


async def fetch_user_name(bot_token: Optional[str], user_id: str) -> str:
    """
    users.info で表示名を取得

    Bot Token 未設定・API失敗時はユーザーIDをそのまま返す。
    """
    if not bot_token or not user_id:
        return user_id

    settings = get_settings()
    start = time.monotonic()
    try:
        async with httpx.AsyncClient(timeout=settings.EXTERNAL_API_TIMEOUT) as client:
            response = await client.get(
                f"{settings.SLACK_API_URL}/users.info",
                params={"user": user_id},
                headers={"Authorization": f"Bearer {bot_token}"},
            )
        log_external_api_call(
            logger,
            service=SOURCE,
            method="GET",
            endpoint="/users.info",
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )
        data = response.json() if response.status_code == 200 else {}
        if not data.get("ok"):
            return user_id
        user = data.get("user") or {}
        profile = user.get("profile") or {}
        return (
            profile.get("display_name")
            or profile.get("real_name")
            or user.get("real_name")
            or user.get("name")
            or user_id
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Failed to get Slack user", error=type(e).__name__)
        return user_id
