"""Generic API response schemas"""

from pydantic import BaseModel
from typing import Optional


class MessageResponse(BaseModel):
    """Plain acknowledgement"""
    message: str


class ErrorResponse(BaseModel):
    """Error envelope shared by every failing endpoint"""
    error: str
    code: Optional[str] = None
