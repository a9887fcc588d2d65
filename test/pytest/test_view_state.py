from datetime import date

import pytest

from school_reports.schemas.view import DEFAULT_PAGE_SIZE, ViewState


def test_defaults():
    state = ViewState()
    assert state.page_index == 0
    assert state.page_size == DEFAULT_PAGE_SIZE == 5
    assert state.name_filter == "" and state.course_id_filter == ""
    assert state.start_date is None and state.end_date is None

@pytest.mark.parametrize("changes", [
    {"name_filter": "hw"},
    {"course_id_filter": "math"},
    {"start_date": date(2024, 1, 1)},
    {"end_date": date(2024, 1, 1)},
    {"page_size": 10},
])
def test_changing_a_filter_resets_the_page(changes):
    state = ViewState(page_index=3)
    updated = state.update(**changes)
    assert updated.page_index == 0
    assert state.page_index == 3

def test_filter_change_wins_over_requested_page():
    assert ViewState().update(page_index=2, name_filter="hw").page_index == 0

def test_page_change_keeps_filters():
    state = ViewState(name_filter="hw").update(page_index=2)
    assert state.page_index == 2
    assert state.name_filter == "hw"

def test_reapplying_the_same_filter_keeps_the_page():
    state = ViewState(name_filter="hw", page_index=1)
    assert state.update(name_filter="hw", page_index=2).page_index == 2

def test_clear_dates_resets_page():
    state = ViewState(start_date=date(2024, 1, 1), page_index=4)
    cleared = state.clear_dates()
    assert cleared.start_date is None and cleared.end_date is None
    assert cleared.page_index == 0

@pytest.mark.parametrize("changes", [{"page_size": 7}, {"page_index": -1}, {"page_size": 0}])
def test_invalid_values_are_rejected(changes):
    with pytest.raises(ValueError):
        ViewState().update(**changes)

def test_unknown_field_is_rejected():
    with pytest.raises(ValueError):
        ViewState().update(sort="newest")
