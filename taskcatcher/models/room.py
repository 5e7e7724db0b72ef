"""
Room Model

監視対象ルーム（チャットルーム / チャンネル / グループ）
"""

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from taskcatcher.models.base import Base, TimestampMixin


class Room(Base, TimestampMixin):
    """ルームマスタ

    is_active=False のルームのメッセージはタスク抽出しない。
    同じ外部ルームIDがプラットフォーム間で重複しうるため、
    一意性は (room_id, source, company_id) で担保する。
    """

    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("room_id", "source", "company_id", name="uq_rooms_room_source_company"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(255), nullable=False)
    room_name = Column(String(255), nullable=False, default="")
    source = Column(String(20), nullable=False, default="chatwork")
    is_active = Column(Boolean, default=True, nullable=False)
    # レガシー（グローバル設定）のルームは NULL
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    # Slack のみ: team_id
    workspace_id = Column(String(50), nullable=True)
