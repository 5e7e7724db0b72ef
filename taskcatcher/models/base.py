"""
SQLAlchemy Base Model

共通のベースモデルと列挙値を定義
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Text, text
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from taskcatcher.secret_box import decrypt_secret, encrypt_secret

Base = declarative_base()


# =============================================================================
# 列挙値（DBには文字列で保存）
# =============================================================================

SOURCES = ("chatwork", "teams", "lark", "slack", "line")

TASK_STATUSES = ("pending", "in_progress", "completed")

PRIORITIES = ("high", "medium", "low")

USER_TYPES = ("system_admin", "admin", "user")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """タイムスタンプ共通カラム"""

    created_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
        nullable=True,
    )


class EncryptedText(TypeDecorator):
    """書き込み時に暗号化、読み込み時に復号するテキスト列"""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return encrypt_secret(value)

    def process_result_value(self, value, dialect):
        return decrypt_secret(value)
