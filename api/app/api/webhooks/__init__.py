"""
Inbound Webhook Routes

各プラットフォームからのイベントを受信し、タスク抽出パイプラインに流す。
Webhook はプラットフォーム側のリトライに影響するためレート制限の対象外。
"""

from fastapi import APIRouter

from api.app.api.webhooks import chatwork, lark, line, slack, teams

router = APIRouter(prefix="/webhook")
router.include_router(chatwork.router)
router.include_router(teams.router)
router.include_router(lark.router)
router.include_router(slack.router)
router.include_router(line.router)
