"""
設定管理モジュール

環境変数とデフォルト値を一元管理します。

使用例:
    from taskcatcher.config import get_settings

    settings = get_settings()
    print(settings.DATABASE_URL)
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """
    アプリケーション設定

    frozen=True で不変オブジェクトとし、スレッドセーフを保証。
    テナント別の認証情報（Webhookシークレット等）はここではなく
    settings テーブルに保存する（taskcatcher.store.settings）。
    """

    # データベース
    DATABASE_URL: str = field(default_factory=lambda: os.getenv(
        "DATABASE_URL", "sqlite:///./taskcatcher.db"
    ))

    # コネクションプール設定（PostgreSQL時のみ有効）
    DB_POOL_SIZE: int = field(default_factory=lambda: int(os.getenv(
        "DB_POOL_SIZE", "5"
    )))
    DB_MAX_OVERFLOW: int = field(default_factory=lambda: int(os.getenv(
        "DB_MAX_OVERFLOW", "2"
    )))
    DB_POOL_TIMEOUT: int = field(default_factory=lambda: int(os.getenv(
        "DB_POOL_TIMEOUT", "30"
    )))
    DB_POOL_RECYCLE: int = field(default_factory=lambda: int(os.getenv(
        "DB_POOL_RECYCLE", "1800"  # 30分でリサイクル
    )))

    # JWT認証（ダッシュボードAPI）
    JWT_SECRET: str = field(default_factory=lambda: os.getenv(
        "TASKCATCHER_JWT_SECRET", ""
    ))
    JWT_EXPIRES_MINUTES: int = field(default_factory=lambda: int(os.getenv(
        "JWT_EXPIRES_MINUTES", "720"
    )))

    # 認証情報の暗号化キー（Fernet, 44文字のurlsafe base64）
    # 未設定の場合は平文で保存する
    CREDENTIALS_ENCRYPTION_KEY: Optional[str] = field(default_factory=lambda: os.getenv(
        "CREDENTIALS_ENCRYPTION_KEY", None
    ))

    # 通知メール
    DASHBOARD_URL: str = field(default_factory=lambda: os.getenv(
        "DASHBOARD_URL", "https://task-extractor-ten.vercel.app/"
    ))
    NOTIFICATION_FROM: str = field(default_factory=lambda: os.getenv(
        "NOTIFICATION_FROM", "たすきゃっちゃー <onboarding@resend.dev>"
    ))
    RESEND_API_URL: str = field(default_factory=lambda: os.getenv(
        "RESEND_API_URL", "https://api.resend.com/emails"
    ))

    # 外部API
    CHATWORK_API_URL: str = "https://api.chatwork.com/v2"
    LINE_API_URL: str = "https://api.line.me/v2/bot"
    SLACK_API_URL: str = "https://slack.com/api"
    # 送信者名の取得はWebhookの応答時間内に収める
    EXTERNAL_API_TIMEOUT: float = field(default_factory=lambda: float(os.getenv(
        "EXTERNAL_API_TIMEOUT", "5"
    )))

    # ログ
    LOG_FORMAT: str = field(default_factory=lambda: os.getenv(
        "LOG_FORMAT", "text"
    ))

    # 環境識別
    ENVIRONMENT: str = field(default_factory=lambda: os.getenv(
        "ENVIRONMENT", "development"
    ))
    DEBUG: bool = field(default_factory=lambda: os.getenv(
        "DEBUG", "false"
    ).lower() == "true")

    @property
    def CORS_ORIGINS(self) -> list:
        default_origins = "http://localhost:3000,http://localhost:8080"
        origins = os.getenv("CORS_ORIGINS", default_origins)
        return [o.strip() for o in origins.split(",") if o.strip()]

    def is_production(self) -> bool:
        """本番環境かどうか"""
        return self.ENVIRONMENT == "production"

    def is_cloud_run(self) -> bool:
        """Cloud Run上で動作しているかどうか"""
        return os.getenv("K_SERVICE") is not None

    def use_json_logs(self) -> bool:
        """構造化（JSON）ログを出力するかどうか"""
        return self.LOG_FORMAT == "json" or self.is_cloud_run()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    設定を取得（シングルトン）

    lru_cache によりアプリケーション全体で1つのインスタンスを共有。
    テストで環境変数を変えた場合は get_settings.cache_clear() を呼ぶこと。
    """
    return Settings()
