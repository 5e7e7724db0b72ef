"""
Room Schemas

監視対象ルームAPI用Pydanticスキーマ
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class RoomResponse(BaseModel):
    id: int
    room_id: str
    room_name: str
    source: str
    is_active: bool
    company_id: Optional[int] = None
    workspace_id: Optional[str] = None


class RoomUpdateRequest(BaseModel):
    """承認（is_active=True）/ 監視停止（is_active=False）"""

    is_active: bool = Field(..., description="タスク抽出の対象にするか")


class RoomCreateRequest(BaseModel):
    """ルームの手動登録"""

    room_id: str = Field(..., min_length=1, description="プラットフォーム上のルームID")
    room_name: str = Field("", description="ルーム名")
    source: Literal["chatwork", "teams", "lark", "slack", "line"] = Field(..., description="ソース")
    workspace_id: Optional[str] = Field(None, description="Slack の team_id")
    is_active: bool = Field(True, description="タスク抽出の対象にするか")
