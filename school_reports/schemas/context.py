from __future__ import annotations
from typing import Optional
from pydantic import BaseModel

ROLE_ADMIN = "admin"
ROLE_TEACHER = "teacher"

REPORT_ROLES = frozenset({ROLE_ADMIN, ROLE_TEACHER})


class UserContext(BaseModel):
    user_id: str
    role: str
    session_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def session_key(self) -> str:
        return self.session_id or self.user_id
