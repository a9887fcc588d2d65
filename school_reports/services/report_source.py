# school_reports/services/report_source.py
from __future__ import annotations
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from school_reports.schemas.data import Report, SchoolStatistics, Submission
from school_reports.services.errors import ReportSourceError

logger = logging.getLogger(__name__)


def sort_submissions(submissions: Iterable[Submission]) -> list[Submission]:
    """Ordine crescente per dateSubmitted (stabile): i piu' vecchi prima."""
    return sorted(submissions, key=lambda s: s.date_submitted)


def parse_report(entry: Any) -> Optional[Report]:
    """
    Valida un singolo report grezzo. Ritorna None se mancano schoolName/submissions.
    Le submission con data non valida vengono scartate singolarmente.
    """
    if not isinstance(entry, dict) or "schoolName" not in entry or "submissions" not in entry:
        logger.warning("Dropping malformed report entry",
                       extra={"school": entry.get("schoolName") if isinstance(entry, dict) else None})
        return None

    raw_submissions = entry.get("submissions") or []
    if not isinstance(raw_submissions, list):
        logger.warning("Dropping report with non-list submissions", extra={"school": entry.get("schoolName")})
        return None

    submissions: list[Submission] = []
    for raw in raw_submissions:
        try:
            submissions.append(Submission.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Dropping invalid submission",
                           extra={"school": entry.get("schoolName"), "error": str(exc)})

    try:
        return Report.model_validate({**entry, "submissions": sort_submissions(submissions)})
    except ValidationError as exc:
        logger.warning("Dropping malformed report entry",
                       extra={"school": entry.get("schoolName"), "error": str(exc)})
        return None


def normalize_reports(entries: Any) -> list[Report]:
    """Filtra le voci malformate, scarta i duplicati di schoolName e ordina le submission."""
    if not isinstance(entries, list):
        raise ReportSourceError("Report source returned an unexpected payload")

    reports: list[Report] = []
    seen: set[str] = set()
    for entry in entries:
        report = parse_report(entry)
        if report is None:
            continue
        if report.school_name in seen:
            logger.warning("Duplicate school in report payload, keeping the first",
                           extra={"school": report.school_name})
            continue
        seen.add(report.school_name)
        reports.append(report)
    return reports


class _HttpJsonClient:
    def __init__(self, base_url: str, *, timeout: float = 15.0, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get_json(self, path: str) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("GET %s", url)
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Request failed: %s", exc, extra={"url": url})
            raise ReportSourceError(f"Failed to fetch {path}. Please try again later.") from exc

        if response.status_code != 200:
            logger.error("Non-200 status from source", extra={"url": url, "status": response.status_code})
            raise ReportSourceError(f"Failed to fetch {path} (Status: {response.status_code})")

        try:
            return response.json()
        except ValueError as exc:
            raise ReportSourceError(f"Invalid JSON from {path}") from exc

    def close(self) -> None:
        self._session.close()


class ReportSource(ABC):

    @abstractmethod
    async def fetch_reports(self) -> list[Report]:
        """Tutti i report, gia' normalizzati."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_report(self, school_name: str) -> Report:
        """Report di una sola scuola, gia' normalizzato."""
        raise NotImplementedError


class HttpReportSource(_HttpJsonClient, ReportSource):
    """GET /reports e GET /reports/{schoolName}; requests gira in un thread per non bloccare il loop."""

    async def fetch_reports(self) -> list[Report]:
        payload = await asyncio.to_thread(self._get_json, "/reports")
        reports = normalize_reports(payload)
        logger.info("Reports loaded", extra={"reports": len(reports)})
        return reports

    async def fetch_report(self, school_name: str) -> Report:
        payload = await asyncio.to_thread(self._get_json, f"/reports/{quote(school_name, safe='')}")
        report = parse_report(payload)
        if report is None:
            raise ReportSourceError(f"Malformed report for {school_name}")
        if report.school_name != school_name:
            raise ReportSourceError(f"Report source answered with {report.school_name} instead of {school_name}")
        return report


class StatisticsSource(ABC):

    @abstractmethod
    async def fetch_statistics(self) -> SchoolStatistics:
        raise NotImplementedError


class HttpStatisticsSource(_HttpJsonClient, StatisticsSource):
    """GET /statistics -> { success, data: SchoolStatistics }"""

    async def fetch_statistics(self) -> SchoolStatistics:
        payload = await asyncio.to_thread(self._get_json, "/statistics")
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ReportSourceError("Statistics source returned an unexpected payload")
        try:
            return SchoolStatistics.model_validate(data)
        except ValidationError as exc:
            raise ReportSourceError("Invalid statistics payload") from exc
