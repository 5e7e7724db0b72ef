"""
API Routes

/api     ダッシュボード向けAPI（JWT認証）
/webhook チャットプラットフォームからの受信
/health  ヘルスチェック
"""

from fastapi import APIRouter

from api.app.api import auth, health, rooms, tasks
from api.app.api.webhooks import router as webhook_router

router = APIRouter(prefix="/api")
router.include_router(auth.router)
router.include_router(tasks.router)
router.include_router(rooms.router)

health_router = health.router

__all__ = ["router", "webhook_router", "health_router"]
