"""
taskcatcher/tenant.py のテスト

テナントコンテキスト管理モジュールのユニットテスト
"""

import pytest

from taskcatcher.tenant import (
    TenantContext,
    get_current_tenant,
    set_current_tenant,
    validate_tenant_access,
)


class TestTenantContext:
    """TenantContext のテスト"""

    def test_context_manager_sets_tenant(self):
        """コンテキストマネージャーでテナント設定"""
        with TenantContext(1):
            assert get_current_tenant() == 1

    def test_context_manager_resets_tenant(self):
        """コンテキストマネージャー終了時にリセット"""
        set_current_tenant(None)

        with TenantContext(1):
            assert get_current_tenant() == 1

        assert get_current_tenant() is None

    def test_nested_context_managers(self):
        """ネストしたコンテキストマネージャー"""
        with TenantContext(1):
            with TenantContext(2):
                assert get_current_tenant() == 2
            assert get_current_tenant() == 1

    def test_context_manager_with_exception(self):
        """例外発生時もリセットされる"""
        set_current_tenant(None)

        with pytest.raises(ValueError):
            with TenantContext(1):
                raise ValueError("Test exception")

        assert get_current_tenant() is None

    def test_context_manager_returns_self(self):
        ctx = TenantContext(5)
        with ctx as result:
            assert result is ctx
            assert result.tenant_id == 5


class TestTenantContextAsync:
    """TenantContext の非同期版テスト"""

    async def test_async_context_manager_sets_and_resets(self):
        set_current_tenant(None)

        async with TenantContext(3):
            assert get_current_tenant() == 3

        assert get_current_tenant() is None

    async def test_legacy_tenant_is_none(self):
        """レガシー（company_id=NULL）のコンテキスト"""
        async with TenantContext(None):
            assert get_current_tenant() is None


class TestValidateTenantAccess:
    """validate_tenant_access のテスト"""

    def test_same_tenant(self):
        assert validate_tenant_access(1, 1) is True

    def test_different_tenant(self):
        assert validate_tenant_access(1, 2) is False

    def test_cross_tenant_allowed(self):
        """system_admin はクロステナント可"""
        assert validate_tenant_access(1, None, allow_cross_tenant=True) is True

    def test_legacy_resource_vs_tenant_user(self):
        """レガシーのタスクはテナントユーザーから見えない"""
        assert validate_tenant_access(None, 1) is False
