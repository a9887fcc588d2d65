import asyncio
from datetime import date

import pytest

from school_reports.schemas.context import UserContext
from school_reports.schemas.view import LoadState
from school_reports.services.access_resolver import AccessResolver
from school_reports.services.errors import ReportsUnavailable, SchoolAccessDenied
from school_reports.services.report_session import ReportSession, SessionRegistry
from fakes import FakeProfileRepo, FakeReportSource, GatedResolver, make_report, sub, teacher_row

TEACHER = UserContext(user_id="t1", role="teacher")
ADMIN = UserContext(user_id="a1", role="admin")


def sample_reports():
    return [
        make_report("X", sub("hw1", "2024-01-03"), sub("hw2", "2024-01-01")),
        make_report("Y", sub("lab", "2024-02-01")),
    ]


def resolver_for(schools):
    return AccessResolver(FakeProfileRepo({"t1": teacher_row("t1", schools)}))


async def started(user=TEACHER, schools=("X",), source=None):
    session = ReportSession(user, source or FakeReportSource(sample_reports()), resolver_for(list(schools)))
    await session.start()
    return session


@pytest.mark.asyncio
async def test_teacher_session_lists_only_accessible_schools():
    session = await started()
    listing = await session.school_list()
    assert listing.state is LoadState.LOADED
    assert listing.schools == ["X"]
    assert listing.scope_resolved

@pytest.mark.asyncio
async def test_admin_session_bypasses_scope():
    session = await started(user=ADMIN, schools=())
    assert (await session.school_list()).schools == ["X", "Y"]

@pytest.mark.asyncio
async def test_teacher_without_access_gets_empty_list():
    session = await started(schools=())
    listing = await session.school_list()
    assert listing.state is LoadState.LOADED
    assert listing.schools == []

@pytest.mark.asyncio
async def test_collection_failure_enters_error_until_retry():
    source = FakeReportSource(sample_reports(), fail=True)
    session = await started(source=source)
    listing = await session.school_list()
    assert listing.state is LoadState.ERROR
    assert listing.error
    with pytest.raises(ReportsUnavailable):
        await session.detail("X")

    source.fail = False
    await session.retry()
    assert (await session.school_list()).state is LoadState.LOADED
    assert source.calls == 2

@pytest.mark.asyncio
async def test_select_and_back():
    session = await started()
    await session.select_school("X")
    assert session.selected_school == "X"
    session.back_to_list()
    assert session.selected_school is None

@pytest.mark.asyncio
async def test_selecting_unauthorized_school_is_rejected():
    session = await started()
    with pytest.raises(SchoolAccessDenied):
        await session.select_school("Y")
    assert session.selected_school is None
    with pytest.raises(SchoolAccessDenied):
        await session.detail("Y")
    with pytest.raises(SchoolAccessDenied):
        await session.refresh_school("Y")

@pytest.mark.asyncio
async def test_detail_exposes_page_and_metadata():
    session = await started()
    await session.update_view("X", name_filter="HW1")
    detail = await session.detail("X")
    assert [s.submission_name for s in detail.submissions] == ["hw1"]
    assert detail.total_filtered_count == 1
    assert detail.page_count == 1
    assert detail.view_state.name_filter == "HW1"
    assert detail.refresh_error is None and not detail.refreshing

@pytest.mark.asyncio
async def test_view_state_updates_are_per_school():
    session = await started(user=ADMIN)
    await session.update_view("Y", page_index=1)
    before = session.view_states
    await session.update_view("X", name_filter="hw", start_date=date(2024, 1, 1))
    assert session.view_states is not before
    assert before.get("X") is None
    assert session.view_state("Y").page_index == 1
    assert session.view_state("X").name_filter == "hw"

@pytest.mark.asyncio
async def test_refresh_replaces_only_that_school():
    source = FakeReportSource(sample_reports())
    session = await started(user=ADMIN, source=source)
    await session.update_view("Y", page_index=1)
    report_y = session.reports[1]
    state_y = session.view_state("Y")

    source.updates["X"] = make_report("X", sub("new", "2024-01-09"), sub("old", "2023-12-31"))
    await session.refresh_school("X")

    x = next(r for r in session.reports if r.school_name == "X")
    assert [s.submission_name for s in x.submissions] == ["old", "new"]
    assert session.reports[1] is report_y
    assert session.view_state("Y") is state_y

@pytest.mark.asyncio
async def test_refresh_failure_stays_on_that_school():
    source = FakeReportSource(sample_reports())
    session = await started(user=ADMIN, source=source)
    reports_before = list(session.reports)
    source.fail_schools.add("X")

    await session.refresh_school("X")

    assert (await session.detail("X")).refresh_error == "Failed to refresh report for X"
    assert (await session.detail("Y")).refresh_error is None
    assert session.reports == reports_before
    assert (await session.school_list()).state is LoadState.LOADED

    source.fail_schools.clear()
    await session.refresh_school("X")
    assert (await session.detail("X")).refresh_error is None

@pytest.mark.asyncio
async def test_stale_scope_result_is_discarded():
    session = ReportSession(TEACHER, FakeReportSource(), resolver_for([]))
    first = session.next_scope_request()
    second = session.next_scope_request()
    assert session.apply_scope(second, frozenset({"Y"}))
    assert not session.apply_scope(first, frozenset({"X"}))
    assert session.scope == frozenset({"Y"})

@pytest.mark.asyncio
async def test_slow_earlier_scope_request_does_not_clobber_later_one():
    resolver = GatedResolver(frozenset({"X"}), frozenset({"Y"}))
    session = ReportSession(TEACHER, FakeReportSource(sample_reports()), resolver)
    await session.load()

    slow = asyncio.create_task(session.refresh_scope())
    await asyncio.sleep(0)
    fast = asyncio.create_task(session.refresh_scope())
    await asyncio.sleep(0)

    resolver.release(1)
    await fast
    assert (await session.school_list()).schools == ["Y"]

    resolver.release(0)
    await slow
    assert (await session.school_list()).schools == ["Y"]

@pytest.mark.asyncio
async def test_teacher_view_waits_for_scope():
    resolver = GatedResolver(frozenset({"X"}))
    session = ReportSession(TEACHER, FakeReportSource(sample_reports()), resolver)
    await session.load()
    scope_task = asyncio.create_task(session.refresh_scope())
    detail_task = asyncio.create_task(session.detail("X"))
    await asyncio.sleep(0)
    assert not detail_task.done()

    resolver.release(0)
    await scope_task
    detail = await detail_task
    assert detail.school_name == "X"

@pytest.mark.asyncio
async def test_unresolved_scope_times_out_to_empty():
    session = ReportSession(TEACHER, FakeReportSource(sample_reports()), resolver_for(["X"]), scope_timeout=0.01)
    await session.load()
    listing = await session.school_list()
    assert listing.schools == []
    assert not listing.scope_resolved


@pytest.mark.asyncio
async def test_registry_reuses_sessions_per_browser_session():
    registry = SessionRegistry(FakeReportSource(sample_reports()), resolver_for(["X"]))
    first = await registry.get_or_create(TEACHER)
    assert await registry.get_or_create(TEACHER) is first

    other_tab = UserContext(user_id="t1", role="teacher", session_id="tab-2")
    assert await registry.get_or_create(other_tab) is not first
    assert len(registry) == 2

@pytest.mark.asyncio
async def test_registry_rescope_picks_up_new_access():
    repo = FakeProfileRepo({"t1": teacher_row("t1", ["X"])})
    registry = SessionRegistry(FakeReportSource(sample_reports()), AccessResolver(repo))
    session = await registry.get_or_create(TEACHER)
    assert (await session.school_list()).schools == ["X"]

    repo.profiles["t1"]["accessible_schools"] = ["X", "Y"]
    assert await registry.rescope_user("t1") == 1
    assert (await session.school_list()).schools == ["X", "Y"]
    assert await registry.rescope_user("nobody") == 0

@pytest.mark.asyncio
async def test_registry_evicts_idle_sessions():
    now = [1000.0]
    registry = SessionRegistry(
        FakeReportSource(sample_reports()), resolver_for(["X"]), idle_timeout=60, clock=lambda: now[0]
    )
    idle = UserContext(user_id="t1", role="teacher", session_id="idle-tab")
    active = UserContext(user_id="t1", role="teacher", session_id="active-tab")
    first = await registry.get_or_create(idle)
    await registry.get_or_create(active)

    now[0] += 45
    await registry.get_or_create(active)
    now[0] += 30
    await registry.get_or_create(active)

    assert registry.get(idle) is None
    assert len(registry) == 1
    assert await registry.get_or_create(idle) is not first
