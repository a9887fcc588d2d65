from datetime import date

import pytest

from school_reports.schemas.data import SchoolStatistics
from school_reports.schemas.view import ViewState
from school_reports.services.errors import SchoolAccessDenied
from school_reports.services.view_builder import (
    build_view, filter_submissions, paginate, scope_reports, scope_statistics,
)
from fakes import make_report, sub

REPORTS = [
    make_report("X", sub("hw1", "2024-01-03", course="MATH-101"), sub("hw2", "2024-01-01", course="BIO-7")),
    make_report("Y", sub("lab", "2024-02-01")),
]


def names(submissions):
    return [s.submission_name for s in submissions]


def test_teacher_sees_intersection_of_reports_and_scope():
    view = build_view(REPORTS, frozenset({"X", "Z"}), "teacher", None)
    assert view.visible_schools == ["X"]
    assert view.submissions_page == []

def test_admin_sees_every_school_regardless_of_scope():
    assert build_view(REPORTS, frozenset(), "admin", None).visible_schools == ["X", "Y"]
    assert build_view(REPORTS, frozenset({"X"}), "admin", None).visible_schools == ["X", "Y"]

def test_unknown_role_is_scoped_like_a_teacher():
    assert scope_reports(REPORTS, frozenset(), "student") == []

def test_teacher_with_empty_scope_sees_nothing():
    view = build_view(REPORTS, frozenset(), "teacher", None)
    assert view.visible_schools == []
    with pytest.raises(SchoolAccessDenied):
        build_view(REPORTS, frozenset(), "teacher", "X")

def test_selecting_school_outside_scope_is_an_authorization_error():
    with pytest.raises(SchoolAccessDenied) as exc_info:
        build_view(REPORTS, frozenset({"X"}), "teacher", "Y")
    assert isinstance(exc_info.value, PermissionError)
    assert exc_info.value.school_name == "Y"
    assert "access" in str(exc_info.value)

def test_name_filter_example_with_single_row_pages():
    # page_size 1 non e' tra le dimensioni ammesse: model_construct salta la validazione
    state = ViewState.model_construct(name_filter="hw1", page_size=1, page_index=0)
    view = build_view(REPORTS, frozenset({"X"}), "teacher", "X", state)
    assert view.total_filtered_count == 1
    assert names(view.submissions_page) == ["hw1"]

def test_name_filter_is_case_insensitive_and_empty_matches_all():
    x = REPORTS[0].submissions
    assert names(filter_submissions(x, ViewState(name_filter="HW"))) == ["hw2", "hw1"]
    assert names(filter_submissions(x, ViewState())) == ["hw2", "hw1"]
    assert filter_submissions(x, ViewState(name_filter="quiz")) == []

def test_course_filter_applies_to_teacher_detail_only():
    state = ViewState(course_id_filter="math")
    teacher = build_view(REPORTS, frozenset({"X"}), "teacher", "X", state)
    admin = build_view(REPORTS, frozenset(), "admin", "X", state)
    assert names(teacher.submissions_page) == ["hw1"]
    assert names(admin.submissions_page) == ["hw2", "hw1"]

def test_date_range_is_inclusive_on_both_bounds():
    x = REPORTS[0].submissions
    same_day = ViewState(start_date=date(2024, 1, 1), end_date=date(2024, 1, 1))
    assert names(filter_submissions(x, same_day)) == ["hw2"]
    assert names(filter_submissions(x, ViewState(start_date=date(2024, 1, 2)))) == ["hw1"]
    assert names(filter_submissions(x, ViewState(end_date=date(2024, 1, 3)))) == ["hw2", "hw1"]
    assert filter_submissions(x, ViewState(start_date=date(2024, 1, 4))) == []

def test_filters_are_combined():
    x = REPORTS[0].submissions
    state = ViewState(name_filter="hw", course_id_filter="bio", end_date=date(2024, 1, 2))
    assert names(filter_submissions(x, state)) == ["hw2"]
    state = ViewState(name_filter="hw1", course_id_filter="bio")
    assert filter_submissions(x, state) == []

def test_pagination_slices_filtered_rows():
    report = make_report("Big", *[sub(f"task{i:02d}", f"2024-03-{i + 1:02d}") for i in range(12)])
    state = ViewState(page_size=5, page_index=2)
    view = build_view([report], frozenset({"Big"}), "teacher", "Big", state)
    filtered = filter_submissions(report.submissions, state)
    assert view.total_filtered_count == len(filtered) == 12
    assert view.submissions_page == filtered[10:15]
    assert names(view.submissions_page) == ["task10", "task11"]
    assert view.page_count == 3

def test_page_past_the_end_is_empty():
    assert paginate([1, 2, 3], 4, 5) == []
    assert paginate([1, 2, 3], 0, 5) == [1, 2, 3]

def test_statistics_are_post_filtered_for_teachers():
    stats = SchoolStatistics.model_validate({
        "totalSchools": 3,
        "schoolNames": ["X", "Y", "Z"],
        "totalSubmissions": 60,
        "averageSubmissionsPerSchool": 20,
        "submissionsBySchool": [
            {"schoolName": "X", "submissionCount": 10},
            {"schoolName": "Y", "submissionCount": 20},
            {"schoolName": "Z", "submissionCount": 30},
        ],
    })
    scoped = scope_statistics(stats, frozenset({"X", "Z"}), "teacher")
    assert scoped.school_names == ["X", "Z"]
    assert scoped.total_schools == 2
    assert scoped.total_submissions == 40
    assert scoped.average_submissions_per_school == 20.0
    assert [r.school_name for r in scoped.submissions_by_school] == ["X", "Z"]

    assert scope_statistics(stats, frozenset(), "admin") is stats
    empty = scope_statistics(stats, frozenset(), "teacher")
    assert empty.total_schools == 0 and empty.average_submissions_per_school == 0.0
