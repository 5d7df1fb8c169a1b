# app/schemas/common/common.py
from pydantic import BaseModel
from typing import Optional


class ErrorDetail(BaseModel):
    code: str
    category: Optional[str] = None
    message: str


class ErrorResponse(BaseModel):
    ok: bool = False
    error: ErrorDetail
