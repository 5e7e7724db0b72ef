"""
Health Check Endpoint

ヘルスチェック用のエンドポイント
"""

import asyncio

from fastapi import APIRouter, Request

from api.app.limiter import limiter
from taskcatcher import __version__
from taskcatcher.db import check_db_health
from taskcatcher.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
@limiter.exempt
async def health_check(request: Request):
    """
    ヘルスチェック

    Returns:
        status: サービス状態
        db: データベース接続状態
    """
    try:
        await asyncio.to_thread(check_db_health)
        db_status = "healthy"
    except Exception as e:
        logger.warning("Health check DB error", error=type(e).__name__)
        db_status = "unhealthy"

    return {
        "status": "healthy",
        "db": db_status,
        "version": __version__,
    }
