"""
Lark（Feishu）チャネル

イベントサブスクリプションの検証・復号・正規化。

Lark は Encrypt Key を設定するとペイロード全体を
{"encrypt": "<base64>"} の形で AES-256-CBC 暗号化して送ってくる。
  - 鍵: SHA-256(encrypt_key)
  - IV: Base64デコード後の先頭16バイト
  - パディング: PKCS#7

Lark Event reference:
  https://open.larksuite.com/document/server-docs/event-subscription-guide/event-subscription-configure-/encrypt-key-encryption-configuration-case
"""

import base64
import binascii
import hashlib
import hmac
import json
from typing import Any, Dict, List, Optional, Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from taskcatcher.channels.base import NormalizedMessage, to_bytes
from taskcatcher.logging import get_logger

logger = get_logger(__name__)

SOURCE = "lark"
MESSAGE_RECEIVE_EVENT = "im.message.receive_v1"
TIMESTAMP_HEADER = "X-Lark-Request-Timestamp"
NONCE_HEADER = "X-Lark-Request-Nonce"
SIGNATURE_HEADER = "X-Lark-Signature"

_IV_LENGTH = 16


# =============================================================================
# チャレンジ
# =============================================================================


def is_challenge(payload: Dict[str, Any]) -> bool:
    """URL検証チャレンジかどうか"""
    return (
        isinstance(payload, dict)
        and payload.get("type") == "url_verification"
        and bool(payload.get("challenge"))
    )


def build_challenge_response(payload: Dict[str, Any]) -> Dict[str, str]:
    return {"challenge": payload["challenge"]}


# =============================================================================
# 検証・復号
# =============================================================================


def verify_lark_token(payload: Dict[str, Any], verification_token: str) -> bool:
    """
    Verification Token を検証

    イベントコールバックは header.token、チャレンジはトップレベルの token に入る。
    どちらも無い場合は False。
    """
    if not verification_token or not isinstance(payload, dict):
        return False

    header = payload.get("header")
    if isinstance(header, dict) and header.get("token"):
        received = str(header["token"])
    elif payload.get("token"):
        received = str(payload["token"])
    else:
        return False

    return hmac.compare_digest(received.encode("utf-8"), verification_token.encode("utf-8"))


def verify_lark_signature(
    timestamp: str,
    nonce: str,
    body: Union[str, bytes],
    signature: Optional[str],
    encrypt_key: str,
) -> bool:
    """
    署名を検証

    signature = hex(SHA-256(timestamp + nonce + encrypt_key + body))
    """
    if not signature or not encrypt_key:
        return False
    content = to_bytes(timestamp or "") + to_bytes(nonce or "") + to_bytes(encrypt_key) + to_bytes(body)
    expected = hashlib.sha256(content).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8", "replace"))


def decrypt_aes(encrypted_data: str, encrypt_key: str) -> str:
    """
    AES-256-CBC で暗号化されたデータを復号

    Raises:
        ValueError: Base64 不正・パディング不正・UTF-8 でない場合
    """
    key = hashlib.sha256(encrypt_key.encode("utf-8")).digest()
    try:
        raw = base64.b64decode(encrypted_data)
    except binascii.Error as e:
        raise ValueError("encrypt field is not valid base64") from e

    if len(raw) <= _IV_LENGTH or (len(raw) - _IV_LENGTH) % 16 != 0:
        raise ValueError("encrypted payload has invalid length")

    iv, ciphertext = raw[:_IV_LENGTH], raw[_IV_LENGTH:]
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plaintext = unpadder.update(padded) + unpadder.finalize()
    return plaintext.decode("utf-8")


def decrypt_lark_payload(encrypted_data: str, encrypt_key: str) -> Optional[Dict[str, Any]]:
    """
    暗号化ペイロードを復号して JSON として返す

    鍵が違う・壊れている場合は None（複数テナントの鍵を順に試すため例外にしない）。
    """
    if not encrypt_key or not encrypted_data:
        return None
    try:
        decrypted = json.loads(decrypt_aes(encrypted_data, encrypt_key))
    except (ValueError, UnicodeDecodeError) as e:
        logger.debug("Lark payload decryption failed", error=type(e).__name__)
        return None
    return decrypted if isinstance(decrypted, dict) else None


# =============================================================================
# メッセージ正規化
# =============================================================================


def _flatten(items: List[Any]) -> List[Any]:
    flat: List[Any] = []
    for item in items:
        if isinstance(item, list):
            flat.extend(item)
        else:
            flat.append(item)
    return flat


def parse_message_content(content: str, message_type: str) -> str:
    """
    メッセージコンテンツ（JSON文字列）から本文を取り出す

    - text: .text
    - post: title があれば title、なければ content 内の tag=text を連結
    - その他: 空文字
    JSON として解析できない場合は content をそのまま返す。
    """
    try:
        parsed = json.loads(content)
    except (TypeError, ValueError):
        return content or ""

    if not isinstance(parsed, dict):
        return ""

    if message_type == "text":
        return parsed.get("text") or ""

    if message_type == "post":
        if parsed.get("title"):
            return parsed["title"]
        body = parsed.get("content")
        if isinstance(body, list):
            return "".join(
                str(item.get("text", ""))
                for item in _flatten(body)
                if isinstance(item, dict) and item.get("tag") == "text"
            )
        return ""

    return ""


def strip_mentions(text: str, mentions: Optional[List[Dict[str, Any]]]) -> str:
    """@_user_N 形式のメンションキーを除去"""
    result = text
    for mention in mentions or []:
        key = mention.get("key") if isinstance(mention, dict) else None
        if key:
            result = result.replace(key, "")
    return result.strip()


def parse_lark_event(payload: Dict[str, Any]) -> Optional[NormalizedMessage]:
    """
    im.message.receive_v1 イベントを NormalizedMessage に変換

    ボット（sender_type=app）の発言と、それ以外のイベントは None。
    """
    if not isinstance(payload, dict):
        return None
    header = payload.get("header") or {}
    if header.get("event_type") != MESSAGE_RECEIVE_EVENT:
        return None

    event = payload.get("event") or {}
    message = event.get("message")
    if not isinstance(message, dict):
        return None

    sender = event.get("sender") or {}
    if sender.get("sender_type") == "app":
        return None

    text = strip_mentions(
        parse_message_content(message.get("content", ""), message.get("message_type", "")),
        message.get("mentions"),
    )

    return NormalizedMessage(
        room_id=str(message.get("chat_id", "")),
        message_id=str(message.get("message_id", "")),
        text=text,
        sender_id=(sender.get("sender_id") or {}).get("open_id", ""),
        source=SOURCE,
        extra={"chat_type": message.get("chat_type", "")},
    )
