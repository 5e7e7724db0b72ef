"""
Task Model

抽出されたタスク
"""

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from taskcatcher.models.base import Base, TimestampMixin


class Task(Base, TimestampMixin):
    """タスク

    同一メッセージの重複配信は (message_id, source, company_id) の
    一意制約で弾く。
    """

    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("message_id", "source", "company_id", name="uq_tasks_message_source_company"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(255), nullable=False)
    message_id = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    original_message = Column(Text, nullable=False, default="")
    sender_name = Column(String(255), nullable=False, default="")
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=False, default="medium")
    source = Column(String(20), nullable=False, default="chatwork")
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    memo = Column(Text, nullable=True)
    # Teams の返信用エンドポイント
    service_url = Column(String(500), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "room_id": self.room_id,
            "message_id": self.message_id,
            "content": self.content,
            "original_message": self.original_message,
            "sender_name": self.sender_name,
            "status": self.status,
            "priority": self.priority,
            "source": self.source,
            "company_id": self.company_id,
            "memo": self.memo,
            "service_url": self.service_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
