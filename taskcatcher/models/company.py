"""
Company Model

テナント（企業）のモデル定義
"""

from sqlalchemy import Boolean, Column, Integer, String

from taskcatcher.models.base import Base, TimestampMixin


class Company(Base, TimestampMixin):
    """企業マスタ

    webhook_token は Chatwork / Teams / LINE のWebhook URL
    （/webhook/<platform>/<webhook_token>）でテナントを特定するために使う。
    """

    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False)
    webhook_token = Column(String(100), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
