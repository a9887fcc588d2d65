from __future__ import annotations
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlalchemy import String, any_, cast, func, literal, not_, select, update
from sqlalchemy.dialects.postgresql import ARRAY, array

from school_reports.database.profile_repository import ProfileRepository
from school_reports.database.tables import metadata, profiles
from school_reports.schemas.context import ROLE_TEACHER

logger = logging.getLogger("reports.repository")

_TEACHER_COLUMNS = (profiles.c.id, profiles.c.email, profiles.c.full_name, profiles.c.accessible_schools)


def _schools_or_empty():
    # accessible_schools NULL si comporta come lista vuota
    return func.coalesce(profiles.c.accessible_schools, cast(array([], type_=String(255)), ARRAY(String(255))))


def _teacher_row(row) -> dict:
    data = dict(row)
    data["accessible_schools"] = list(data.get("accessible_schools") or [])
    return data


class PostgresProfileRepository(ProfileRepository):
    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    async def ensure_schema(self) -> None:
        logger.info("Ensuring schema for profile tables")
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("Schema ready")

    async def get_accessible_schools(self, user_id: str) -> Optional[list[str]]:
        stmt = select(profiles.c.accessible_schools).where(profiles.c.id == user_id)
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).first()
        if row is None:
            logger.debug("No profile row", extra={"user_id": user_id})
            return None
        return list(row[0]) if row[0] is not None else None

    async def list_teachers(self) -> list[dict]:
        stmt = (
            select(*_TEACHER_COLUMNS)
            .where(profiles.c.role == ROLE_TEACHER)
            .order_by(profiles.c.full_name, profiles.c.email)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [_teacher_row(r) for r in rows]

    async def get_teacher(self, user_id: str) -> Optional[dict]:
        stmt = select(*_TEACHER_COLUMNS).where(
            profiles.c.id == user_id, profiles.c.role == ROLE_TEACHER
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).mappings().first()
        return _teacher_row(row) if row is not None else None

    async def set_accessible_schools(self, user_id: str, schools: list[str]) -> bool:
        if not user_id:
            raise ValueError("user_id obbligatorio")
        stmt = (
            update(profiles)
            .where(profiles.c.id == user_id, profiles.c.role == ROLE_TEACHER)
            .values(accessible_schools=list(schools))
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        updated = result.rowcount > 0
        logger.debug("Accessible schools saved",
                     extra={"user_id": user_id, "schools": len(schools), "updated": updated})
        return updated

    # append idempotente: un solo UPDATE, la condizione sul duplicato e' valutata sulla riga
    async def add_accessible_school(self, user_id: str, school: str) -> Optional[list[str]]:
        if not user_id or not school:
            raise ValueError("user_id e school sono obbligatori")
        stmt = (
            update(profiles)
            .where(
                profiles.c.id == user_id,
                profiles.c.role == ROLE_TEACHER,
                not_(literal(school, String(255)) == any_(_schools_or_empty())),
            )
            .values(accessible_schools=func.array_append(_schools_or_empty(), school))
            .returning(profiles.c.accessible_schools)
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).first()
            await session.commit()
        if row is None:
            logger.debug("School not added", extra={"user_id": user_id, "school": school})
            return None
        logger.debug("School added", extra={"user_id": user_id, "school": school})
        return list(row[0] or [])

    async def remove_accessible_school(self, user_id: str, school: str) -> Optional[list[str]]:
        if not user_id:
            raise ValueError("user_id obbligatorio")
        stmt = (
            update(profiles)
            .where(profiles.c.id == user_id, profiles.c.role == ROLE_TEACHER)
            .values(accessible_schools=func.array_remove(_schools_or_empty(), school))
            .returning(profiles.c.accessible_schools)
        )
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).first()
            await session.commit()
        if row is None:
            return None
        logger.debug("School removed", extra={"user_id": user_id, "school": school})
        return list(row[0] or [])
