# school_reports/services/access_resolver.py
import logging
from typing import Optional

from school_reports.database.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

EMPTY_SCOPE: frozenset[str] = frozenset()


class AccessResolver:
    """
    Calcola l'insieme delle scuole visibili a un docente.
    Ogni errore porta allo scope vuoto: mai "tutte le scuole".
    """

    def __init__(self, repo: ProfileRepository) -> None:
        self.repo = repo

    async def resolve_accessible_schools(self, user_id: Optional[str]) -> frozenset[str]:
        if not user_id:
            logger.debug("No authenticated user, empty scope")
            return EMPTY_SCOPE

        try:
            schools = await self.repo.get_accessible_schools(user_id)
        except Exception:
            logger.exception("Profile lookup failed, falling back to empty scope",
                             extra={"user_id": user_id})
            return EMPTY_SCOPE

        if not schools:
            logger.info("No accessible schools for user", extra={"user_id": user_id})
            return EMPTY_SCOPE

        scope = frozenset(s for s in schools if isinstance(s, str) and s)
        logger.debug("Scope resolved", extra={"user_id": user_id, "schools": len(scope)})
        return scope
