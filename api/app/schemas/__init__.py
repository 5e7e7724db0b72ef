"""
Pydantic Schemas for たすきゃっちゃー API
"""

from api.app.schemas.auth import LoginRequest, LoginResponse, LoginUser
from api.app.schemas.room import RoomCreateRequest, RoomResponse, RoomUpdateRequest
from api.app.schemas.task import (
    DeleteCompletedResponse,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
)

__all__ = [
    # Auth
    "LoginRequest",
    "LoginResponse",
    "LoginUser",
    # Room
    "RoomCreateRequest",
    "RoomResponse",
    "RoomUpdateRequest",
    # Task
    "DeleteCompletedResponse",
    "TaskCreateRequest",
    "TaskResponse",
    "TaskUpdateRequest",
]
