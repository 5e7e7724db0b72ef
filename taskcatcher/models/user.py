"""
User & Role Models

ユーザー・ロール・ロール権限のモデル定義
"""

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from taskcatcher.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """ユーザーマスタ

    user_type:
        system_admin = 全テナント横断（company_id は NULL）
        admin        = 自テナントの全タスクを操作可能
        user         = ロール権限の範囲でのみ閲覧・操作
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False, default="")
    user_type = Column(String(20), nullable=False, default="user")
    is_active = Column(Boolean, default=True, nullable=False)

    roles = relationship("Role", secondary="user_roles", back_populates="users")


class Role(Base, TimestampMixin):
    """ロール（テナントごとに定義）"""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    name = Column(String(100), nullable=False)

    users = relationship("User", secondary="user_roles", back_populates="roles")
    permissions = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        order_by="RolePermission.id",
    )


class RolePermission(Base, TimestampMixin):
    """ロール権限

    room_id / source が NULL の場合はワイルドカード（全ルーム / 全ソース）。
    """

    __tablename__ = "role_permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    room_id = Column(String(255), nullable=True)
    source = Column(String(20), nullable=True)
    can_view = Column(Boolean, default=True, nullable=False)
    can_edit_status = Column(Boolean, default=False, nullable=False)
    can_delete = Column(Boolean, default=False, nullable=False)

    role = relationship("Role", back_populates="permissions")


class UserRole(Base):
    """ユーザーとロールの中間テーブル"""

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
