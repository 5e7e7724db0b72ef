"""
テナントコンテキスト管理モジュール

マルチテナント環境でのテナント（企業 = companies.id）識別を管理。
Webhookハンドラはトークンから企業を特定した時点で、
APIはJWTからユーザーを復元した時点でコンテキストを設定する。

ログフォーマッターがこの値を参照して tenant_id を自動付与する。
ストア層はコンテキストを参照しない（company_id は必ず引数で渡す）。

使用例:
    from taskcatcher.tenant import TenantContext, get_current_tenant

    with TenantContext(company.id):
        tenant_id = get_current_tenant()
"""

from contextvars import ContextVar
from typing import Optional

# コンテキスト変数（スレッド/非同期セーフ）
_current_tenant: ContextVar[Optional[int]] = ContextVar(
    "current_tenant", default=None
)


class TenantContext:
    """
    テナントコンテキストマネージャー

    with ブロック内でテナントIDを設定し、ブロック終了時に元に戻す。
    """

    def __init__(self, tenant_id: Optional[int]):
        self.tenant_id = tenant_id
        self._token = None

    def __enter__(self):
        self._token = _current_tenant.set(self.tenant_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _current_tenant.reset(self._token)
        return False

    async def __aenter__(self):
        """非同期版 enter"""
        self._token = _current_tenant.set(self.tenant_id)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """非同期版 exit"""
        _current_tenant.reset(self._token)
        return False


def get_current_tenant() -> Optional[int]:
    """現在のテナントIDを取得（未設定の場合は None）"""
    return _current_tenant.get()


def set_current_tenant(tenant_id: Optional[int]) -> None:
    """
    テナントIDを設定

    注意: 通常は TenantContext を使用すること。
    ルートハンドラの途中でテナントが判明した場合など、
    with ブロックで囲めない場合にのみ使用する。
    """
    _current_tenant.set(tenant_id)


def validate_tenant_access(
    resource_tenant_id: Optional[int],
    user_tenant_id: Optional[int],
    allow_cross_tenant: bool = False,
) -> bool:
    """
    テナントアクセス権限を検証

    Args:
        resource_tenant_id: リソース（タスク等）の所属テナントID
        user_tenant_id: ユーザーが所属するテナントID
        allow_cross_tenant: クロステナントアクセスを許可するか（system_admin用）

    Returns:
        True: アクセス許可
    """
    if allow_cross_tenant:
        return True

    return resource_tenant_id == user_tenant_id
