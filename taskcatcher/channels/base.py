"""
チャネル共通定義

各プラットフォームのWebhookペイロードは、プラットフォーム別モジュールの
parse_*() で NormalizedMessage に変換される。
Webhookルートとタスク抽出パイプライン（taskcatcher.ingestion）は
この型のみを扱い、プラットフォーム固有の詳細を知らない。

【設計原則】
- プラットフォーム別モジュールは関数（verify_* / parse_* / is_challenge）を公開するだけ
- 検証関数は例外を投げない（不正な入力は False）
- パーサーは処理対象外のイベントに None を返す
- DB非依存: このパッケージはDBアクセスしない
"""

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


# =============================================================================
# データクラス
# =============================================================================


@dataclass(frozen=True)
class NormalizedMessage:
    """
    プラットフォーム非依存のメッセージ構造体

    本文が空の場合もメッセージとして返す（抽出で「タスクではない」になる）。
    """
    room_id: str                # ルーム / チャンネル / グループID
    message_id: str             # プラットフォーム上のメッセージID
    text: str                   # 正規化済み本文（メンション・HTML除去済み）
    sender_id: str              # 送信者ID
    source: str                 # "chatwork", "teams", "lark", "slack", "line"
    sender_name: str = ""       # ペイロードに含まれる場合のみ
    extra: Dict[str, Any] = field(default_factory=dict)  # serviceUrl 等


# =============================================================================
# 署名検証ユーティリティ
# =============================================================================


def to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def decode_base64_key(value: str) -> Optional[bytes]:
    """
    Base64エンコードされたシークレットをデコード

    パディングの欠落は補完する。デコードできない場合は None。
    """
    if not value:
        return None
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.b64decode(padded)
    except (binascii.Error, ValueError):
        return None


def hmac_sha256_base64(key: bytes, body: Union[str, bytes]) -> str:
    """HMAC-SHA256 の Base64 表現"""
    digest = hmac.new(key, to_bytes(body), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def constant_time_equals(expected: str, received: Optional[str]) -> bool:
    """
    長さチェック後に定数時間比較

    received が空・None の場合は常に False。
    """
    if not received or not expected:
        return False
    expected_bytes = to_bytes(expected)
    received_bytes = to_bytes(received)
    if len(expected_bytes) != len(received_bytes):
        return False
    return hmac.compare_digest(expected_bytes, received_bytes)
