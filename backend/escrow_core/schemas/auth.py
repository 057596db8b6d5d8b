"""
Current user schemas
"""

from typing import Optional
from pydantic import BaseModel


class MeResponse(BaseModel):
    user_id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    status: str
