# school_reports/services/report_session.py
from __future__ import annotations
import asyncio
import logging
import time
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from school_reports.schemas.context import UserContext
from school_reports.schemas.data import Report
from school_reports.schemas.view import LoadState, SchoolDetailView, SchoolListView, ViewState
from school_reports.services.access_resolver import EMPTY_SCOPE, AccessResolver
from school_reports.services.errors import ReportSourceError, ReportsUnavailable
from school_reports.services.report_source import ReportSource
from school_reports.services.view_builder import build_view, scope_reports, select_report

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Failed to fetch reports. Please try again later."


class ReportSession:
    """
    Stato di una sessione di consultazione dei report:
      loading -> error | loaded
      loaded: elenco scuole <-> dettaglio scuola
    Lo scope viene applicato solo se la richiesta che lo ha prodotto e' la piu' recente
    (ordine di avvio, non di completamento).
    """

    def __init__(
        self,
        user: UserContext,
        source: ReportSource,
        resolver: AccessResolver,
        *,
        scope_timeout: float = 10.0,
    ) -> None:
        self.user = user
        self.source = source
        self.resolver = resolver
        self.scope_timeout = scope_timeout

        self.state = LoadState.LOADING
        self.error: Optional[str] = None
        self.reports: list[Report] = []
        self.selected_school: Optional[str] = None

        # schoolName -> ViewState, sostituito per intero a ogni modifica
        self.view_states: Mapping[str, ViewState] = MappingProxyType({})
        self.school_errors: dict[str, str] = {}
        self.refreshing: set[str] = set()

        self.scope: frozenset[str] = EMPTY_SCOPE
        self._scope_seq = 0
        self._applied_scope_id = 0
        self._scope_ready = asyncio.Event()

    # -----------------------------
    # Scope
    # -----------------------------
    def next_scope_request(self) -> int:
        self._scope_seq += 1
        return self._scope_seq

    def apply_scope(self, request_id: int, scope: frozenset[str]) -> bool:
        """Applica lo scope se request_id e' il piu' alto visto finora; altrimenti lo scarta."""
        if request_id <= self._applied_scope_id:
            logger.info("Discarding stale scope result",
                        extra={"user_id": self.user.user_id, "request_id": request_id,
                               "applied_id": self._applied_scope_id})
            return False
        self._applied_scope_id = request_id
        self.scope = frozenset(scope)
        self._scope_ready.set()
        return True

    async def refresh_scope(self) -> None:
        if self.user.is_admin:
            self._scope_ready.set()
            return
        request_id = self.next_scope_request()
        scope = await self.resolver.resolve_accessible_schools(self.user.user_id)
        self.apply_scope(request_id, scope)

    async def wait_for_scope(self) -> frozenset[str]:
        if self.user.is_admin:
            return self.scope
        try:
            await asyncio.wait_for(self._scope_ready.wait(), timeout=self.scope_timeout)
        except asyncio.TimeoutError:
            logger.warning("Scope resolution timed out, using empty scope",
                           extra={"user_id": self.user.user_id})
            return EMPTY_SCOPE
        return self.scope

    @property
    def scope_resolved(self) -> bool:
        return self.user.is_admin or self._scope_ready.is_set()

    # -----------------------------
    # Caricamento
    # -----------------------------
    async def start(self) -> None:
        await asyncio.gather(self.refresh_scope(), self.load())

    async def load(self) -> None:
        self.state = LoadState.LOADING
        self.error = None
        try:
            reports = await self.source.fetch_reports()
        except ReportSourceError as exc:
            logger.error("Report collection fetch failed: %s", exc, extra={"user_id": self.user.user_id})
            self.state = LoadState.ERROR
            self.error = LOAD_ERROR_MESSAGE
            return
        except Exception:
            logger.exception("Unexpected error fetching reports")
            self.state = LoadState.ERROR
            self.error = LOAD_ERROR_MESSAGE
            return

        self.reports = reports
        self.school_errors.clear()
        if self.selected_school and all(r.school_name != self.selected_school for r in reports):
            self.selected_school = None
        self.state = LoadState.LOADED
        logger.info("Reports loaded for session", extra={"user_id": self.user.user_id, "reports": len(reports)})

    async def retry(self) -> None:
        await self.load()

    def _require_loaded(self) -> None:
        if self.state is LoadState.LOADING:
            raise ReportsUnavailable("Reports are still loading")
        if self.state is LoadState.ERROR:
            raise ReportsUnavailable(self.error or LOAD_ERROR_MESSAGE)

    # -----------------------------
    # Navigazione
    # -----------------------------
    async def visible_reports(self) -> list[Report]:
        scope = await self.wait_for_scope()
        return scope_reports(self.reports, scope, self.user.role)

    async def school_list(self) -> SchoolListView:
        schools: list[str] = []
        if self.state is LoadState.LOADED:
            schools = [r.school_name for r in await self.visible_reports()]
        return SchoolListView(
            state=self.state,
            error=self.error,
            schools=schools,
            selected_school=self.selected_school,
            scope_resolved=self.scope_resolved,
        )

    async def _authorized_report(self, school_name: str) -> Report:
        self._require_loaded()
        return select_report(await self.visible_reports(), school_name)

    async def select_school(self, school_name: str) -> None:
        await self._authorized_report(school_name)
        self.selected_school = school_name

    def back_to_list(self) -> None:
        self.selected_school = None

    def view_state(self, school_name: str) -> ViewState:
        return self.view_states.get(school_name) or ViewState()

    async def update_view(self, school_name: str, **changes) -> ViewState:
        await self._authorized_report(school_name)
        new_state = self.view_state(school_name).update(**changes)
        self.view_states = MappingProxyType({**self.view_states, school_name: new_state})
        return new_state

    async def detail(self, school_name: str) -> SchoolDetailView:
        self._require_loaded()
        scope = await self.wait_for_scope()
        view_state = self.view_state(school_name)
        view = build_view(self.reports, scope, self.user.role, school_name, view_state)
        report = select_report(self.reports, school_name)
        return SchoolDetailView(
            school_name=report.school_name,
            google_sheets_link=report.google_sheets_link,
            updated_at=report.updated_at,
            error_message=report.error_message,
            view_state=view_state,
            submissions=view.submissions_page,
            total_filtered_count=view.total_filtered_count,
            page_count=view.page_count,
            refreshing=school_name in self.refreshing,
            refresh_error=self.school_errors.get(school_name),
        )

    # -----------------------------
    # Refresh singola scuola
    # -----------------------------
    async def refresh_school(self, school_name: str) -> None:
        """Riscarica una scuola; un errore resta confinato a quella scuola."""
        await self._authorized_report(school_name)
        self.refreshing.add(school_name)
        try:
            report = await self.source.fetch_report(school_name)
        except Exception as exc:
            logger.error("Refresh failed for %s: %s", school_name, exc, extra={"user_id": self.user.user_id})
            self.school_errors[school_name] = f"Failed to refresh report for {school_name}"
            return
        finally:
            self.refreshing.discard(school_name)

        self.reports = [report if r.school_name == school_name else r for r in self.reports]
        self.school_errors.pop(school_name, None)
        logger.info("School report refreshed", extra={"school": school_name, "submissions": len(report.submissions)})


class SessionRegistry:
    """
    Sessioni in memoria, una per sessione browser (sid del token o user id).
    Una sessione non usata per idle_timeout secondi viene rimossa al primo get_or_create successivo.
    """

    def __init__(
        self,
        source: ReportSource,
        resolver: AccessResolver,
        *,
        scope_timeout: float = 10.0,
        idle_timeout: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.resolver = resolver
        self.scope_timeout = scope_timeout
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: dict[str, ReportSession] = {}
        self._last_seen: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user: UserContext) -> Optional[ReportSession]:
        session = self._sessions.get(user.session_key)
        if session is not None and session.user == user:
            return session
        return None

    async def get_or_create(self, user: UserContext) -> ReportSession:
        async with self._lock:
            now = self._clock()
            self._evict_idle(now)
            session = self.get(user)
            created = session is None
            if created:
                session = ReportSession(user, self.source, self.resolver, scope_timeout=self.scope_timeout)
                self._sessions[user.session_key] = session
                logger.debug("Session created", extra={"user_id": user.user_id})
            self._last_seen[user.session_key] = now
        if created:
            await session.start()
        return session

    def _evict_idle(self, now: float) -> None:
        expired = [key for key, seen in self._last_seen.items() if now - seen > self.idle_timeout]
        for key in expired:
            self._sessions.pop(key, None)
            del self._last_seen[key]
        if expired:
            logger.info("Idle sessions evicted", extra={"sessions": len(expired)})

    async def rescope_user(self, user_id: str) -> int:
        """Rilancia la risoluzione dello scope per tutte le sessioni dell'utente."""
        sessions = [s for s in self._sessions.values() if s.user.user_id == user_id]
        await asyncio.gather(*(s.refresh_scope() for s in sessions))
        if sessions:
            logger.info("Scope re-resolved", extra={"user_id": user_id, "sessions": len(sessions)})
        return len(sessions)
