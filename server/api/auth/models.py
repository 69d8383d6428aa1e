# Authentication data models

from typing import Optional
from pydantic import BaseModel, Field


class TokenData(BaseModel):
    """Claims carried by an access token"""
    uid: str = Field(..., min_length=1, description="Caller id")
    is_admin: bool = False
    exp: Optional[int] = None


class RefreshTokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
