"""
TaskCatcher API - FastAPI Entry Point

チャットプラットフォームの Webhook を受信してタスクを抽出し、
ダッシュボード向けのタスク管理APIを提供する。

使用方法（ローカル開発）:
    uvicorn api.main:app --reload --port 8080

使用方法（Cloud Run）:
    gunicorn api.main:app -k uvicorn.workers.UvicornWorker
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.app.api import health_router, router as api_router, webhook_router
from api.app.limiter import limiter
from taskcatcher import __version__
from taskcatcher.config import get_settings
from taskcatcher.db import init_db
from taskcatcher.exceptions import TaskCatcherError
from taskcatcher.logging import get_logger, log_api_request
from taskcatcher.notification import wait_for_pending_notifications

logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションのライフサイクル管理"""
    logger.info("TaskCatcher API starting up...", environment=settings.ENVIRONMENT)
    await asyncio.to_thread(init_db)
    yield
    # 送信中の通知メールを待ってから終了する
    await wait_for_pending_notifications()
    logger.info("TaskCatcher API shutting down...")


app = FastAPI(
    title="TaskCatcher API",
    description="たすきゃっちゃー チャットからのタスク自動抽出 API",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# レート制限（slowapi）
# SlowAPIMiddleware が全ルートに default_limits=["100/minute"] を適用
# ログインは @limiter.limit("10/minute")、Webhook とヘルスチェックは @limiter.exempt
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS設定
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """リクエストログ"""
    start_time = time.time()

    response = await call_next(request)

    log_api_request(
        logger,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2),
    )
    return response


@app.exception_handler(TaskCatcherError)
async def taskcatcher_error_handler(request: Request, exc: TaskCatcherError):
    """業務エラー → {error} と対応するステータス"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}", path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """入力検証エラーは 400 に統一"""
    logger.info("Request validation failed", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """グローバル例外ハンドラー（スタックトレースは返さない）"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        exc_info=True,
        path=request.url.path,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.include_router(api_router)
app.include_router(webhook_router)
app.include_router(health_router)


@app.get("/")
async def root():
    """ルートエンドポイント"""
    return {
        "name": "TaskCatcher API",
        "version": __version__,
        "status": "running",
    }
