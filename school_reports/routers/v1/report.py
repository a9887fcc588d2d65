# school_reports/routers/v1/report.py
from datetime import date
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from school_reports.core.deps import get_access_resolver, get_session_registry, get_statistics_source
from school_reports.schemas.context import UserContext
from school_reports.services.access_resolver import AccessResolver
from school_reports.services.auth_service import AuthService
from school_reports.services.errors import ReportSourceError, ReportsUnavailable
from school_reports.services.report_service import ReportService
from school_reports.services.report_session import SessionRegistry
from school_reports.services.report_source import StatisticsSource

router = APIRouter()
RegistryDep = Annotated[SessionRegistry, Depends(get_session_registry)]
ResolverDep = Annotated[AccessResolver, Depends(get_access_resolver)]
StatisticsDep = Annotated[StatisticsSource, Depends(get_statistics_source)]
UserDep = Annotated[UserContext, Depends(AuthService.get_current_user)]


def _to_http(exc: Exception) -> HTTPException:
    # SchoolAccessDenied compreso: "no access", mai 404
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, ReportsUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, ReportSourceError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.get("/report/schools")
async def list_schools(user: UserDep, registry: RegistryDep):
    try:
        return await ReportService.schools(user, registry)
    except PermissionError as e:
        raise _to_http(e)

@router.post("/report/retry")
async def retry_reports(user: UserDep, registry: RegistryDep):
    try:
        return await ReportService.retry(user, registry)
    except PermissionError as e:
        raise _to_http(e)

@router.delete("/report/schools/selection")
async def back_to_list(user: UserDep, registry: RegistryDep):
    try:
        return await ReportService.back_to_list(user, registry)
    except PermissionError as e:
        raise _to_http(e)

@router.get("/report/schools/{school_name}")
async def school_detail(
    school_name: str,
    user: UserDep,
    registry: RegistryDep,
    page: Annotated[Optional[int], Query(ge=0)] = None,
    page_size: Optional[int] = None,
    name: Optional[str] = None,
    course_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    clear_dates: bool = False,
):
    try:
        return await ReportService.school_detail(
            user, registry, school_name,
            page=page, page_size=page_size, name=name, course_id=course_id,
            start_date=start_date, end_date=end_date, clear_dates=clear_dates,
        )
    except (PermissionError, ReportsUnavailable, ValueError) as e:
        raise _to_http(e)

@router.post("/report/schools/{school_name}/refresh")
async def refresh_school(school_name: str, user: UserDep, registry: RegistryDep):
    try:
        return await ReportService.refresh_school(user, registry, school_name)
    except (PermissionError, ReportsUnavailable) as e:
        raise _to_http(e)

@router.get("/report/statistics")
async def statistics(user: UserDep, source: StatisticsDep, resolver: ResolverDep):
    try:
        return await ReportService.statistics(user, source, resolver)
    except (PermissionError, ReportSourceError) as e:
        raise _to_http(e)
