"""
Rate Limiter Singleton

slowapi Limiter を一箇所で定義し、main.py と各ルートファイルが import して使う。
循環インポート防止のため、このモジュールはアプリ依存なし。

- default_limits: 全エンドポイントに 100回/分（SlowAPIMiddleware 経由）
- ログインは auth.py で @limiter.limit("10/minute") を追加
- ヘルスチェックと Webhook は @limiter.exempt で除外
  （Webhook は各プラットフォームの少数の送信元IPから集中して届くため）

## GCP Cloud Run 対応

GFE は実クライアント IP を X-Forwarded-For ヘッダーの末尾に追記する。
slowapi 標準の get_remote_address は request.client.host（= LB IP）を返すため、
X-Forwarded-For の末尾エントリを使う。
"""
from fastapi import Request
from slowapi import Limiter


def get_client_ip(request: Request) -> str:
    """
    X-Forwarded-For の末尾（GFE が追記した実クライアント IP）を使う。
    ローカル開発時は request.client.host にフォールバック。
    """
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for:
        return forwarded_for.split(",")[-1].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


limiter = Limiter(key_func=get_client_ip, default_limits=["100/minute"])
