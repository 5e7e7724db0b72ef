"""
Settings / SlackWorkspace Models

テナント別の認証情報と通知設定
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text

from taskcatcher.models.base import Base, EncryptedText, TimestampMixin


class CompanySettings(Base, TimestampMixin):
    """テナント別設定

    1テナント1行。company_id が NULL の行はレガシーのグローバル設定
    （マルチテナント化以前の互換モード）。
    シークレット列は CREDENTIALS_ENCRYPTION_KEY 設定時に暗号化して保存される。
    """

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey("companies.id"), unique=True, nullable=True)

    # Chatwork
    chatwork_api_token = Column(EncryptedText, nullable=True)
    chatwork_webhook_token = Column(EncryptedText, nullable=True)

    # Teams
    teams_webhook_secret = Column(EncryptedText, nullable=True)

    # Lark
    lark_verification_token = Column(EncryptedText, nullable=True)
    lark_encrypt_key = Column(EncryptedText, nullable=True)

    # LINE
    line_channel_secret = Column(EncryptedText, nullable=True)
    line_access_token = Column(EncryptedText, nullable=True)

    # 通知
    resend_api_key = Column(EncryptedText, nullable=True)
    notification_emails = Column(Text, nullable=True)  # カンマ区切り
    notify_on_create = Column(Boolean, default=True, nullable=False)
    notify_on_complete = Column(Boolean, default=True, nullable=False)
    notify_on_delete = Column(Boolean, default=False, nullable=False)
    dashboard_url = Column(String(500), nullable=True)

    @property
    def notification_email_list(self) -> list:
        if not self.notification_emails:
            return []
        return [e.strip() for e in self.notification_emails.split(",") if e.strip()]


class SlackWorkspace(Base, TimestampMixin):
    """Slackワークスペース（team_id でテナントを特定）"""

    __tablename__ = "slack_workspaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(String(50), unique=True, nullable=False)
    workspace_name = Column(String(255), nullable=False, default="")
    signing_secret = Column(EncryptedText, nullable=False)
    bot_token = Column(EncryptedText, nullable=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
