from fastapi import Request
from school_reports.database.profile_repository import ProfileRepository
from school_reports.services.access_resolver import AccessResolver
from school_reports.services.report_session import SessionRegistry
from school_reports.services.report_source import StatisticsSource

def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} not initialised")
    return value

def get_profile_repository(request: Request) -> ProfileRepository:
    return _state(request, "profile_repo")

def get_access_resolver(request: Request) -> AccessResolver:
    return _state(request, "access_resolver")

def get_session_registry(request: Request) -> SessionRegistry:
    return _state(request, "session_registry")

def get_statistics_source(request: Request) -> StatisticsSource:
    return _state(request, "statistics_source")
