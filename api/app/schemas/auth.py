"""
Auth Schemas

ログインAPI用Pydanticスキーマ
"""

from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, description="メールアドレス")
    password: str = Field(..., min_length=1, description="パスワード")


class LoginUser(BaseModel):
    id: int
    email: str
    name: str
    company_id: Optional[int] = None
    user_type: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: LoginUser
