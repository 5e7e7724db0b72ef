"""
構造化ログモジュール

Cloud Logging と連携した構造化ログを提供。
テナントID（companies.id）を自動で含める。

使用例:
    from taskcatcher.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Task created", task_id=42, source="chatwork")
    logger.error("Database error", error=str(e))

出力例（JSON形式）:
    {
        "severity": "INFO",
        "message": "Task created",
        "task_id": 42,
        "tenant_id": 3,
        "timestamp": "2026-01-17T10:00:00Z"
    }

注意:
    Webhookトークンや署名シークレットは絶対にログに出さないこと。
    どうしても必要な場合は mask_token() で先頭だけ残す。
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, cast
from functools import lru_cache

from taskcatcher.config import get_settings
from taskcatcher.tenant import get_current_tenant


class StructuredFormatter(logging.Formatter):
    """
    Cloud Logging 互換の構造化ログフォーマッター

    JSON形式でログを出力し、Cloud Logging で自動パース可能。
    """

    SEVERITY_MAP = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARNING",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        """ログレコードをJSON形式にフォーマット"""

        log_entry: Dict[str, Any] = {
            "severity": self.SEVERITY_MAP.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "logger": record.name,
        }

        # テナントID（自動付与）
        tenant_id = get_current_tenant()
        if tenant_id is not None:
            log_entry["tenant_id"] = tenant_id

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """
    ローカル開発用フォーマッター

    追加フィールドを key=value 形式で末尾に付ける。
    """

    def __init__(self):
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = dict(getattr(record, "extra_fields", {}) or {})
        tenant_id = get_current_tenant()
        if tenant_id is not None:
            fields.setdefault("tenant_id", tenant_id)
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


class StructuredLogger(logging.Logger):
    """
    構造化ログ対応のカスタムロガー

    追加のキーワード引数をログエントリに含める。
    """

    def _log_with_extra(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        **kwargs: Any
    ) -> None:
        extra = {"extra_fields": kwargs}
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        if self.isEnabledFor(logging.DEBUG):
            self._log_with_extra(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        if self.isEnabledFor(logging.INFO):
            self._log_with_extra(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, exc_info: Any = None, **kwargs: Any) -> None:  # type: ignore[override]
        if self.isEnabledFor(logging.WARNING):
            self._log_with_extra(
                logging.WARNING, msg, args, exc_info=exc_info, **kwargs
            )

    def error(self, msg: str, *args: Any, exc_info: Any = None, **kwargs: Any) -> None:  # type: ignore[override]
        if self.isEnabledFor(logging.ERROR):
            self._log_with_extra(
                logging.ERROR, msg, args, exc_info=exc_info, **kwargs
            )

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:  # type: ignore[override]
        """例外情報付きでエラーログを記録"""
        self.error(msg, *args, exc_info=True, **kwargs)


@lru_cache(maxsize=64)
def get_logger(name: str) -> StructuredLogger:
    """
    構造化ロガーを取得

    Args:
        name: ロガー名（通常は __name__）

    Returns:
        StructuredLogger インスタンス
    """
    settings = get_settings()

    # setLoggerClass はグローバルに効くため、このモジュールのロガー生成時だけ差し替える
    manager = logging.Logger.manager
    previous_class = manager.loggerClass
    manager.setLoggerClass(StructuredLogger)
    try:
        logger = logging.getLogger(name)
    finally:
        manager.loggerClass = previous_class

    if logger.handlers:
        return cast(StructuredLogger, logger)

    level = logging.DEBUG if settings.DEBUG else logging.INFO
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    # Cloud Run では構造化フォーマット、ローカル開発では読みやすいフォーマット
    if settings.use_json_logs():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(ReadableFormatter())

    logger.addHandler(handler)

    # pytest の caplog で拾えるよう、伝播は止めない
    return cast(StructuredLogger, logger)


def mask_token(token: Optional[str], visible: int = 6) -> str:
    """Webhookトークン等をログ用に先頭だけ残してマスク"""
    if not token:
        return ""
    return token[:visible] + "..."


# =============================================================================
# 便利関数
# =============================================================================

def log_api_request(
    logger: StructuredLogger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **extra
):
    """APIリクエストをログに記録"""
    logger.info(
        f"{method} {path} -> {status_code}",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        **extra
    )


def log_external_api_call(
    logger: StructuredLogger,
    service: str,
    method: str,
    endpoint: str,
    status_code: int,
    duration_ms: float,
    **extra
):
    """
    外部APIコールをログに記録

    使用例:
        log_external_api_call(
            logger,
            service="chatwork",
            method="GET",
            endpoint="/rooms/123/messages/456",
            status_code=200,
            duration_ms=320.5
        )
    """
    logger.info(
        f"External API: {service} {method} {endpoint} -> {status_code}",
        service=service,
        method=method,
        endpoint=endpoint,
        status_code=status_code,
        duration_ms=duration_ms,
        **extra
    )


# =============================================================================
# 監査ログ
# =============================================================================

def log_audit_event(
    logger: StructuredLogger,
    action: str,
    resource_type: str,
    resource_id: str,
    user_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
):
    """
    監査イベントをログに記録

    タスクの作成・ステータス変更・削除で呼ぶ。

    使用例:
        log_audit_event(
            logger,
            action="update_status",
            resource_type="task",
            resource_id="42",
            user_id="7",
            details={"status": "completed"}
        )
    """
    logger.info(
        f"Audit: {action} {resource_type}/{resource_id}",
        audit=True,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        user_id=user_id,
        details=details or {},
    )
