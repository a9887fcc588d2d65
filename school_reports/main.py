# school_reports/main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from school_reports.core.config import settings
from school_reports.routers.v1 import access
from school_reports.routers.v1 import health
from school_reports.routers.v1 import report

from sqlalchemy.ext.asyncio import create_async_engine
from school_reports.database.postgres_profile import PostgresProfileRepository
from school_reports.services.access_resolver import AccessResolver
from school_reports.services.consumer_service import AccessEventConsumer
from school_reports.services.report_session import SessionRegistry
from school_reports.services.report_source import HttpReportSource, HttpStatisticsSource

def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    engine = create_async_engine(settings.postgres_url, echo=False, pool_pre_ping=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        profile_repository = PostgresProfileRepository(engine)
        await profile_repository.ensure_schema()

        report_source = HttpReportSource(settings.report_source_url, timeout=settings.source_timeout_seconds)
        statistics_source = HttpStatisticsSource(settings.statistics_source_url, timeout=settings.source_timeout_seconds)
        resolver = AccessResolver(profile_repository)
        registry = SessionRegistry(report_source, resolver, idle_timeout=settings.session_idle_seconds)

        app.state.profile_repo = profile_repository
        app.state.access_resolver = resolver
        app.state.session_registry = registry
        app.state.statistics_source = statistics_source

        consumer = AccessEventConsumer(
            registry=registry,
            rabbitmq_url=settings.rabbitmq_url,
            durable=True,
        )
        app.state.consumer = consumer
        await consumer.start()

        try:
            yield
        finally:
            try:
                await consumer.stop()
            finally:
                report_source.close()
                statistics_source.close()
                # chiudi connessione DB
                await engine.dispose()

    app = FastAPI(
        title="School Reports Service",
        description="Report delle consegne per scuola, filtrati per ruolo e scuole accessibili",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(report.router, prefix="/api/v1", tags=["report"])
    app.include_router(access.router, prefix="/api/v1", tags=["access"])
    return app


app = create_app()
