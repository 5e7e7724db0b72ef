"""
pytest 共通フィクスチャ

テスト全体で共有するフィクスチャを定義します。
DBはテストごとにインメモリSQLiteを作り直す。
"""

import datetime
from unittest.mock import MagicMock, patch

import pytest
from jose import jwt

from taskcatcher.config import get_settings
from taskcatcher.db import configure_engine, create_db_engine, dispose_engine, init_db, session_scope

# テスト用JWT秘密鍵
TEST_JWT_SECRET = "test-secret-key-for-unit-tests-only"

TENANT_TOKEN = "tenant-a-webhook-token"
OTHER_TENANT_TOKEN = "tenant-b-webhook-token"


# ================================================================
# 環境変数のモック
# ================================================================

@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """テスト用の環境変数を設定（設定キャッシュもリセット）"""
    monkeypatch.setenv("TASKCATCHER_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DASHBOARD_URL", "https://dashboard.example.com/")
    monkeypatch.delenv("CREDENTIALS_ENCRYPTION_KEY", raising=False)
    monkeypatch.delenv("K_SERVICE", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ================================================================
# データベース
# ================================================================

@pytest.fixture
def db_engine():
    """インメモリDB（テーブル作成済み）を注入"""
    engine = create_db_engine("sqlite://")
    configure_engine(engine)
    init_db(engine)
    yield engine
    dispose_engine()


@pytest.fixture
def db_session(db_engine):
    """テスト本体で直接使うセッション"""
    with session_scope() as session:
        yield session


@pytest.fixture
def seed(db_engine):
    """
    2テナント分の基本データ

    Returns:
        dict: 企業・ユーザー・ロールのID
    """
    from taskcatcher.store import companies, roles, settings, users

    with session_scope() as session:
        company_a = companies.create_company(session, "株式会社A", "company-a", TENANT_TOKEN)
        company_b = companies.create_company(session, "株式会社B", "company-b", OTHER_TENANT_TOKEN)

        settings.upsert_company_settings(
            session,
            company_a.id,
            chatwork_webhook_token="dGVzdC1jaGF0d29yay1rZXk=",
            teams_webhook_secret="dGVzdC10ZWFtcy1zZWNyZXQ=",
            line_channel_secret="line-channel-secret",
            lark_verification_token="lark-verification-token",
            lark_encrypt_key="lark-encrypt-key",
        )
        settings.upsert_company_settings(session, company_b.id)

        system_admin = users.create_user(session, "root@example.com", "password", "Root", "system_admin")
        admin_a = users.create_user(session, "admin@a.example.com", "password", "Admin A", "admin", company_a.id)
        member_a = users.create_user(session, "member@a.example.com", "password", "Member A", "user", company_a.id)
        norole_a = users.create_user(session, "norole@a.example.com", "password", "No Role", "user", company_a.id)
        admin_b = users.create_user(session, "admin@b.example.com", "password", "Admin B", "admin", company_b.id)

        role = roles.create_role(session, company_a.id, "Chatwork担当")
        roles.add_role_permission(session, role.id, source="chatwork", can_view=True, can_edit_status=True)
        roles.assign_role(session, member_a.id, role.id)

        return {
            "company_a": company_a.id,
            "company_b": company_b.id,
            "system_admin": system_admin.id,
            "admin_a": admin_a.id,
            "member_a": member_a.id,
            "norole_a": norole_a.id,
            "admin_b": admin_b.id,
            "role_a": role.id,
        }


# ================================================================
# JWT
# ================================================================

def make_token(
    user_id,
    company_id,
    user_type="user",
    expires_minutes=60,
    secret=TEST_JWT_SECRET,
    extra_claims=None,
):
    """テスト用JWTトークンを生成"""
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": str(user_id),
        "company_id": company_id,
        "user_type": user_type,
        "email": f"user{user_id}@example.com",
        "name": f"User {user_id}",
        "iat": now,
        "exp": now + datetime.timedelta(minutes=expires_minutes),
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id, company_id, user_type="user"):
    return {"Authorization": f"Bearer {make_token(user_id, company_id, user_type)}"}


# ================================================================
# 通知・アプリ
# ================================================================

@pytest.fixture
def mock_notifications():
    """通知メールのバックグラウンド送信を止める"""
    ingestion_mock = MagicMock()
    api_mock = MagicMock()
    with patch("taskcatcher.ingestion.dispatch_task_notification", ingestion_mock), \
            patch("api.app.api.tasks.dispatch_task_notification", api_mock):
        yield {"ingestion": ingestion_mock, "api": api_mock}


@pytest.fixture
def client(db_engine, mock_notifications):
    """FastAPI TestClient（レート制限は無効）"""
    from fastapi.testclient import TestClient

    from api.app.limiter import limiter
    from api.main import app

    limiter.enabled = False
    with TestClient(app) as test_client:
        yield test_client
    limiter.enabled = True


@pytest.fixture
def auth():
    """auth_headers(user_id, company_id, user_type) を返す"""
    return auth_headers
