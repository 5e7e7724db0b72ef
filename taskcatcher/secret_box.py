"""
認証情報の暗号化

settings / slack_workspaces テーブルのシークレット列（APIトークン、
署名シークレット等）を Fernet で暗号化して保存する。

CREDENTIALS_ENCRYPTION_KEY 未設定時は平文のまま扱う（開発用）。
暗号化導入前に保存された平文の値は、復号に失敗した場合そのまま返す。
"""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from taskcatcher.config import get_settings
from taskcatcher.logging import get_logger

logger = get_logger(__name__)

# Fernet トークンは常にこのプレフィックスで始まる（バージョンバイト 0x80）
_FERNET_PREFIX = "gAAAA"


def _get_fernet() -> Optional[Fernet]:
    key = get_settings().CREDENTIALS_ENCRYPTION_KEY
    if not key:
        return None
    try:
        return Fernet(key.encode())
    except (ValueError, TypeError):
        logger.warning("CREDENTIALS_ENCRYPTION_KEY is not a valid Fernet key")
        return None


def encrypt_secret(value: Optional[str]) -> Optional[str]:
    """シークレットを暗号化する。キー未設定時は平文のまま返す。"""
    if not value:
        return value
    fernet = _get_fernet()
    if fernet is None:
        return value
    return fernet.encrypt(value.encode()).decode()


def decrypt_secret(value: Optional[str]) -> Optional[str]:
    """暗号化されたシークレットを復号する。キー未設定時はそのまま返す。"""
    if not value:
        return value
    fernet = _get_fernet()
    if fernet is None or not value.startswith(_FERNET_PREFIX):
        return value
    try:
        return fernet.decrypt(value.encode()).decode()
    except InvalidToken:
        # 暗号化前の値 or キー不一致
        logger.warning("Stored secret could not be decrypted, using raw value")
        return value
