# school_reports/services/auth_service.py
import logging
from typing import Any, Optional

import jwt
from fastapi import Header, HTTPException, status

from school_reports.core.config import settings
from school_reports.schemas.context import UserContext

logger = logging.getLogger(__name__)


class AuthError(Exception):
    pass


def _parse_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid auth scheme")
    return parts[1].strip()


class AuthService:
    @staticmethod
    def decode_token(token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                settings.jwt_public_key,
                algorithms=[settings.jwt_algorithm],
                audience=settings.jwt_audience,
                options={"verify_aud": settings.jwt_audience is not None},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("Invalid token") from exc
        if not payload.get("sub") or not payload.get(settings.jwt_role_claim):
            raise AuthError("Invalid token payload")
        return payload

    @staticmethod
    async def get_current_user(
        authorization: Optional[str] = Header(default=None, alias="Authorization"),
    ) -> UserContext:
        token = _parse_token(authorization)
        try:
            payload = AuthService.decode_token(token)
        except AuthError as exc:
            logger.info("Rejected token: %s", exc)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
        return UserContext(
            user_id=str(payload["sub"]),
            role=str(payload[settings.jwt_role_claim]),
            session_id=payload.get("sid"),
        )
