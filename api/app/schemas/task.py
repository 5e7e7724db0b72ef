"""
Task Schemas

タスクAPI用Pydanticスキーマ
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

Source = Literal["chatwork", "teams", "lark", "slack", "line"]
Priority = Literal["high", "medium", "low"]


# =============================================================================
# リクエストスキーマ
# =============================================================================


class TaskCreateRequest(BaseModel):
    """タスク手動登録（管理者のみ）"""

    content: str = Field(..., min_length=1, description="タスク内容")
    room_id: str = Field("manual", description="ルームID")
    source: Source = Field("chatwork", description="ソース")
    priority: Priority = Field("medium", description="優先度")
    sender_name: str = Field("", description="依頼者名")
    original_message: Optional[str] = Field(None, description="元メッセージ（省略時は content）")
    memo: Optional[str] = Field(None, description="メモ")


class TaskUpdateRequest(BaseModel):
    """タスク更新（status と memo のどちらか、または両方）

    status は不正値でも 400 を返すため、ここでは文字列として受ける。
    """

    status: Optional[str] = Field(None, description="pending / in_progress / completed")
    memo: Optional[str] = Field(None, description="メモ")


# =============================================================================
# レスポンススキーマ
# =============================================================================


class TaskResponse(BaseModel):
    """タスク"""

    id: int
    room_id: str
    message_id: str
    content: str
    original_message: str
    sender_name: str
    status: str
    priority: str
    source: str
    company_id: Optional[int] = None
    memo: Optional[str] = None
    service_url: Optional[str] = None
    message_url: Optional[str] = Field(None, description="元メッセージへのリンク")
    message_url_label: Optional[str] = Field(None, description="リンクの表示名")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class DeleteCompletedResponse(BaseModel):
    success: bool
    deletedCount: int
    message: str
