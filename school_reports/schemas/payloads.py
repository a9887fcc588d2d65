from __future__ import annotations
from typing import TypedDict
from pydantic import BaseModel, Field

# ---- Eventi ----
class AccessChangedPayload(TypedDict):
    userId: str

# ---- Body richieste admin ----
class SchoolAccessPayload(BaseModel):
    school: str = Field(..., min_length=1)

class SchoolListPayload(BaseModel):
    schools: list[str] = Field(default_factory=list)
