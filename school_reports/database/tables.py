from sqlalchemy import (
    MetaData, Table, Column, String, DateTime, func
)
from sqlalchemy.dialects.postgresql import ARRAY

metadata = MetaData()

profiles = Table(
    "profiles",
    metadata,
    Column("id", String(100), primary_key=True),
    Column("email", String(255), nullable=True, index=True),
    Column("full_name", String(255), nullable=True),
    Column("role", String(32), nullable=False, index=True),
    Column("accessible_schools", ARRAY(String(255)), nullable=True),
    Column("updated_at", DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now()),
)
