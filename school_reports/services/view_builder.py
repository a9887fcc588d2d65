# school_reports/services/view_builder.py
"""
Proiezione lato lettura dei report: scoping per ruolo, selezione della scuola,
filtri, paginazione. Funzioni pure, nessun I/O.
"""
from __future__ import annotations
from typing import Optional, Sequence, TypeVar

from school_reports.schemas.context import ROLE_ADMIN, ROLE_TEACHER
from school_reports.schemas.data import Report, SchoolStatistics, Submission
from school_reports.schemas.view import ReportView, ViewState
from school_reports.services.errors import SchoolAccessDenied

T = TypeVar("T")


def scope_reports(reports: Sequence[Report], scope: frozenset[str], role: str) -> list[Report]:
    # admin vede tutto; ogni altro ruolo e' limitato allo scope
    if role == ROLE_ADMIN:
        return list(reports)
    return [r for r in reports if r.school_name in scope]


def select_report(visible: Sequence[Report], school_name: str) -> Report:
    for report in visible:
        if report.school_name == school_name:
            return report
    raise SchoolAccessDenied(school_name)


def _contains(value: str, needle: str) -> bool:
    return not needle or needle.lower() in value.lower()


def filter_submissions(
    submissions: Sequence[Submission], view_state: ViewState, *, course_filter: bool = True
) -> list[Submission]:
    start, end = view_state.start_date, view_state.end_date
    result = []
    for s in submissions:
        if not _contains(s.submission_name, view_state.name_filter):
            continue
        if course_filter and not _contains(s.course_id, view_state.course_id_filter):
            continue
        day = s.date_submitted.date()
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        result.append(s)
    return result


def paginate(items: Sequence[T], page_index: int, page_size: int) -> list[T]:
    return list(items[page_index * page_size:(page_index + 1) * page_size])


def build_view(
    reports: Sequence[Report],
    scope: frozenset[str],
    role: str,
    school_name: Optional[str],
    view_state: Optional[ViewState] = None,
) -> ReportView:
    """
    Ritorna { visible_schools, submissions_page, total_filtered_count }.
    Senza school_name si ottiene solo l'elenco delle scuole visibili.
    Solleva SchoolAccessDenied se school_name non e' visibile.
    """
    view_state = view_state or ViewState()
    visible = scope_reports(reports, scope, role)
    view = ReportView(
        visible_schools=[r.school_name for r in visible],
        page_size=view_state.page_size,
    )
    if school_name is None:
        return view

    report = select_report(visible, school_name)
    # il filtro per courseId esiste solo nella vista di dettaglio del docente
    filtered = filter_submissions(report.submissions, view_state, course_filter=role == ROLE_TEACHER)
    view.submissions_page = paginate(filtered, view_state.page_index, view_state.page_size)
    view.total_filtered_count = len(filtered)
    return view


def scope_statistics(stats: SchoolStatistics, scope: frozenset[str], role: str) -> SchoolStatistics:
    if role == ROLE_ADMIN:
        return stats

    by_school = [row for row in stats.submissions_by_school if row.school_name in scope]
    names = [name for name in stats.school_names if name in scope]
    for row in by_school:
        if row.school_name not in names:
            names.append(row.school_name)
    total = sum(row.submission_count for row in by_school)
    return SchoolStatistics(
        total_schools=len(names),
        school_names=names,
        total_submissions=total,
        average_submissions_per_school=total / len(names) if names else 0.0,
        submissions_by_school=by_school,
    )
