# school_reports/services/access_service.py
import logging
from typing import Optional, Sequence

from school_reports.database.profile_repository import ProfileRepository
from school_reports.schemas.context import ROLE_ADMIN, UserContext
from school_reports.schemas.data import TeacherProfile
from school_reports.services.errors import DuplicateSchoolError, ProfileNotFound
from school_reports.services.report_session import SessionRegistry

logger = logging.getLogger(__name__)

def is_admin(role: str) -> bool:
    return role == ROLE_ADMIN

def _ensure_admin(user: UserContext) -> None:
    if not is_admin(user.role):
        raise PermissionError("Only admins can manage school access")

def clean_school_list(schools: Sequence[str]) -> list[str]:
    """Nomi ripuliti dagli spazi, vuoti scartati; un duplicato e' un errore."""
    cleaned: list[str] = []
    for school in schools:
        name = (school or "").strip()
        if not name:
            continue
        if name in cleaned:
            raise DuplicateSchoolError(name)
        cleaned.append(name)
    return cleaned


class AccessService:
    @staticmethod
    async def teachers(user: UserContext, repo: ProfileRepository, query: Optional[str] = None) -> list[TeacherProfile]:
        _ensure_admin(user)
        rows = await repo.list_teachers()
        needle = (query or "").strip().lower()
        if needle:
            rows = [
                r for r in rows
                if needle in (r.get("full_name") or "").lower() or needle in (r.get("email") or "").lower()
            ]
        return [TeacherProfile.model_validate(r) for r in rows]

    @staticmethod
    async def _teacher(repo: ProfileRepository, teacher_id: str) -> dict:
        row = await repo.get_teacher(teacher_id)
        if row is None:
            raise ProfileNotFound(teacher_id)
        return row

    @staticmethod
    async def _save(
        repo: ProfileRepository, registry: Optional[SessionRegistry], teacher: dict, schools: list[str]
    ) -> TeacherProfile:
        if not await repo.set_accessible_schools(teacher["id"], schools):
            raise ProfileNotFound(teacher["id"])
        return await AccessService._applied(registry, teacher, schools)

    @staticmethod
    async def _applied(registry: Optional[SessionRegistry], teacher: dict, schools: list[str]) -> TeacherProfile:
        logger.info("Accessible schools updated", extra={"teacher_id": teacher["id"], "schools": schools})
        if registry is not None:
            await registry.rescope_user(teacher["id"])
        return TeacherProfile.model_validate({**teacher, "accessible_schools": schools})

    @staticmethod
    async def add_school(
        user: UserContext, repo: ProfileRepository, registry: Optional[SessionRegistry], teacher_id: str, school: str
    ) -> TeacherProfile:
        _ensure_admin(user)
        name = (school or "").strip()
        if not name:
            raise ValueError("Please enter a school name to add")
        schools = await repo.add_accessible_school(teacher_id, name)
        teacher = await AccessService._teacher(repo, teacher_id)
        if schools is None:
            raise DuplicateSchoolError(name)
        return await AccessService._applied(registry, teacher, schools)

    @staticmethod
    async def remove_school(
        user: UserContext, repo: ProfileRepository, registry: Optional[SessionRegistry], teacher_id: str, school: str
    ) -> TeacherProfile:
        _ensure_admin(user)
        schools = await repo.remove_accessible_school(teacher_id, school)
        teacher = await AccessService._teacher(repo, teacher_id)
        if schools is None:
            raise ProfileNotFound(teacher_id)
        return await AccessService._applied(registry, teacher, schools)

    @staticmethod
    async def set_schools(
        user: UserContext, repo: ProfileRepository, registry: Optional[SessionRegistry], teacher_id: str, schools: Sequence[str]
    ) -> TeacherProfile:
        _ensure_admin(user)
        cleaned = clean_school_list(schools)
        teacher = await AccessService._teacher(repo, teacher_id)
        return await AccessService._save(repo, registry, teacher, cleaned)
