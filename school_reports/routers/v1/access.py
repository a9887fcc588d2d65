# school_reports/routers/v1/access.py
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from school_reports.core.deps import get_profile_repository, get_session_registry
from school_reports.database.profile_repository import ProfileRepository
from school_reports.schemas.context import UserContext
from school_reports.schemas.payloads import SchoolAccessPayload, SchoolListPayload
from school_reports.services.access_service import AccessService
from school_reports.services.auth_service import AuthService
from school_reports.services.errors import DuplicateSchoolError, ProfileNotFound
from school_reports.services.report_session import SessionRegistry

router = APIRouter()
ProfileRepoDep = Annotated[ProfileRepository, Depends(get_profile_repository)]
RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]
UserDep = Annotated[UserContext, Depends(AuthService.get_current_user)]


def _to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ProfileNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, DuplicateSchoolError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.get("/access/teachers")
async def list_teachers(user: UserDep, repo: ProfileRepoDep, q: Optional[str] = None):
    try:
        return await AccessService.teachers(user, repo, q)
    except PermissionError as e:
        raise _to_http(e)

@router.put("/access/teachers/{teacher_id}/schools")
async def set_schools(teacher_id: str, body: SchoolListPayload, user: UserDep, repo: ProfileRepoDep, registry: RegistryDep):
    try:
        return await AccessService.set_schools(user, repo, registry, teacher_id, body.schools)
    except (PermissionError, ProfileNotFound, ValueError) as e:
        raise _to_http(e)

@router.post("/access/teachers/{teacher_id}/schools")
async def add_school(teacher_id: str, body: SchoolAccessPayload, user: UserDep, repo: ProfileRepoDep, registry: RegistryDep):
    try:
        return await AccessService.add_school(user, repo, registry, teacher_id, body.school)
    except (PermissionError, ProfileNotFound, ValueError) as e:
        raise _to_http(e)

@router.delete("/access/teachers/{teacher_id}/schools/{school}")
async def remove_school(teacher_id: str, school: str, user: UserDep, repo: ProfileRepoDep, registry: RegistryDep):
    try:
        return await AccessService.remove_school(user, repo, registry, teacher_id, school)
    except (PermissionError, ProfileNotFound) as e:
        raise _to_http(e)
