from __future__ import annotations
from datetime import date, datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from school_reports.schemas.data import Submission

ALLOWED_PAGE_SIZES = (5, 10, 25)
DEFAULT_PAGE_SIZE = 5

# campi che riportano la pagina a 0 quando cambiano
FILTER_FIELDS = frozenset({"page_size", "name_filter", "course_id_filter", "start_date", "end_date"})


class LoadState(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class ViewState(BaseModel):
    """Stato di visualizzazione di una singola scuola (filtri + paginazione)."""
    model_config = ConfigDict(frozen=True)

    page_index: int = Field(0, ge=0)
    page_size: int = DEFAULT_PAGE_SIZE
    name_filter: str = ""
    course_id_filter: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("page_size")
    @classmethod
    def _allowed_page_size(cls, value: int) -> int:
        if value not in ALLOWED_PAGE_SIZES:
            raise ValueError(f"page_size must be one of {ALLOWED_PAGE_SIZES}")
        return value

    def update(self, **changes) -> ViewState:
        """Nuovo ViewState con le modifiche applicate; un filtro cambiato azzera page_index."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown view state fields: {sorted(unknown)}")

        data = self.model_dump()
        changed = {name for name, value in changes.items() if data[name] != value}
        data.update(changes)
        if changed & FILTER_FIELDS:
            data["page_index"] = 0
        return ViewState.model_validate(data)

    def clear_dates(self) -> ViewState:
        return self.update(start_date=None, end_date=None)


class ReportView(BaseModel):
    visible_schools: list[str] = Field(default_factory=list)
    submissions_page: list[Submission] = Field(default_factory=list)
    total_filtered_count: int = 0
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def page_count(self) -> int:
        return -(-self.total_filtered_count // self.page_size)


class SchoolListView(BaseModel):
    state: LoadState
    error: Optional[str] = None
    schools: list[str] = Field(default_factory=list)
    selected_school: Optional[str] = None
    scope_resolved: bool = False


class SchoolDetailView(BaseModel):
    school_name: str
    google_sheets_link: Optional[str] = None
    updated_at: Optional[datetime] = None
    error_message: Optional[str] = None
    view_state: ViewState
    submissions: list[Submission] = Field(default_factory=list)
    total_filtered_count: int = 0
    page_count: int = 0
    refreshing: bool = False
    refresh_error: Optional[str] = None
