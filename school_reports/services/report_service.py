# school_reports/services/report_service.py
from datetime import date
from typing import Optional

from school_reports.schemas.context import REPORT_ROLES, UserContext
from school_reports.schemas.data import SchoolStatistics
from school_reports.schemas.view import SchoolDetailView, SchoolListView
from school_reports.services.access_resolver import AccessResolver
from school_reports.services.report_session import ReportSession, SessionRegistry
from school_reports.services.report_source import StatisticsSource
from school_reports.services.view_builder import scope_statistics

def can_view_reports(role: str) -> bool:
    return role in REPORT_ROLES

def _ensure_report_role(user: UserContext) -> None:
    if not can_view_reports(user.role):
        raise PermissionError("Only teachers and admins can access reports")


class ReportService:
    @staticmethod
    async def session(user: UserContext, registry: SessionRegistry) -> ReportSession:
        _ensure_report_role(user)
        return await registry.get_or_create(user)

    @staticmethod
    async def schools(user: UserContext, registry: SessionRegistry) -> SchoolListView:
        session = await ReportService.session(user, registry)
        return await session.school_list()

    @staticmethod
    async def retry(user: UserContext, registry: SessionRegistry) -> SchoolListView:
        session = await ReportService.session(user, registry)
        await session.retry()
        return await session.school_list()

    @staticmethod
    async def back_to_list(user: UserContext, registry: SessionRegistry) -> SchoolListView:
        session = await ReportService.session(user, registry)
        session.back_to_list()
        return await session.school_list()

    @staticmethod
    async def school_detail(
        user: UserContext,
        registry: SessionRegistry,
        school_name: str,
        *,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        name: Optional[str] = None,
        course_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        clear_dates: bool = False,
    ) -> SchoolDetailView:
        session = await ReportService.session(user, registry)

        changes = {}
        if page is not None:
            changes["page_index"] = page
        if page_size is not None:
            changes["page_size"] = page_size
        if name is not None:
            changes["name_filter"] = name
        if course_id is not None:
            changes["course_id_filter"] = course_id
        if start_date is not None:
            changes["start_date"] = start_date
        if end_date is not None:
            changes["end_date"] = end_date
        if clear_dates:
            changes["start_date"] = None
            changes["end_date"] = None

        if changes:
            # un filtro cambiato vince sulla pagina richiesta (page_index torna a 0)
            await session.update_view(school_name, **changes)
        # selezione solo dopo che le modifiche sono state validate
        await session.select_school(school_name)
        return await session.detail(school_name)

    @staticmethod
    async def refresh_school(user: UserContext, registry: SessionRegistry, school_name: str) -> SchoolDetailView:
        session = await ReportService.session(user, registry)
        await session.refresh_school(school_name)
        return await session.detail(school_name)

    @staticmethod
    async def statistics(
        user: UserContext, source: StatisticsSource, resolver: AccessResolver
    ) -> SchoolStatistics:
        _ensure_report_role(user)
        stats = await source.fetch_statistics()
        if user.is_admin:
            return stats
        scope = await resolver.resolve_accessible_schools(user.user_id)
        return scope_statistics(stats, scope, user.role)
