"""
たすきゃっちゃー 例外クラス

ルートハンドラ・ストア・認証で使用する例外を定義する。
各例外は HTTP ステータスと、クライアントに返してよいメッセージを持つ。
api/main.py の例外ハンドラが {"error": message} 形式のJSONに変換する。

「監視対象外のルーム」「タスクではないメッセージ」「重複配信」は
正常系の結果（taskcatcher.ingestion.IngestOutcome）であり、例外ではない。
"""

from typing import Optional


# ================================================================
# 基底例外
# ================================================================

class TaskCatcherError(Exception):
    """たすきゃっちゃーの基底例外クラス"""

    status_code: int = 500
    default_message: str = "Internal server error"
    default_error_code: str = "TASKCATCHER_ERROR"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """レスポンスボディ用の辞書を返す（details は含めない）"""
        return {"error": self.message}


# ================================================================
# 具体的な例外クラス
# ================================================================

class AuthenticationFailure(TaskCatcherError):
    """署名・トークン・セッションの検証失敗"""

    status_code = 401
    default_message = "Unauthorized"
    default_error_code = "AUTHENTICATION_FAILED"


class ConfigurationMissing(TaskCatcherError):
    """テナントがプラットフォームのシークレットを未設定"""

    status_code = 400
    default_message = "Webhook is not configured"
    default_error_code = "CONFIGURATION_MISSING"

    def __init__(self, message: Optional[str] = None, platform: Optional[str] = None):
        super().__init__(
            message=message,
            details={"platform": platform} if platform else {},
        )


class MalformedRequest(TaskCatcherError):
    """リクエストボディが解析できない、またはフィールドが不正"""

    status_code = 400
    default_message = "Invalid request"
    default_error_code = "MALFORMED_REQUEST"


class PermissionDenied(TaskCatcherError):
    """認証済みだが操作が許可されていない"""

    status_code = 403
    default_message = "Forbidden"
    default_error_code = "PERMISSION_DENIED"


class NotFound(TaskCatcherError):
    """タスク・ルーム・企業などが存在しない"""

    status_code = 404
    default_message = "Not found"
    default_error_code = "NOT_FOUND"
