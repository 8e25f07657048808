"""SQLAlchemy mapping metadata for prospects and conversion records."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)

from funnelsync.domain.model import (
    ConversionRecord,
    ConversionSource,
    ConversionStage,
    Guest,
    MembershipType,
    Trial,
)

if TYPE_CHECKING:
    from enum import StrEnum

    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


def _values(enum_cls: type[StrEnum]) -> list[str]:
    return [member.value for member in enum_cls]


def _enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(enum_cls, native_enum=False, values_callable=_values, length=16)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}

trial_booking_table = Table(
    "trial_booking",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("email", String, nullable=False),
    Column("name", String, nullable=True),
    Column("city", String, nullable=False),
    Column("country", String(2), nullable=False),
    Column("member_id", String, key="external_member_id", nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("attended", Boolean, nullable=False, default=False),
    Index("ix_trial_booking_member_id", "external_member_id"),
)

guest_table = Table(
    "guest",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("member_id", String, key="external_member_id", nullable=False),
    Column("country", String(2), nullable=False),
    Column("credits_left", Integer, nullable=False),
    Column("package_size", Integer, nullable=False),
    Column("city", String, nullable=True),
    Column("start_date", UTCDateTime(), nullable=True),
    Column("converted_at", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    UniqueConstraint("external_member_id", "country"),
    Index("ix_guest_converted_at", "converted_at"),
)

conversion_table = Table(
    "conversion",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("member_id", String, key="external_member_id", nullable=False),
    Column("city", String, nullable=True),
    Column("member_since", UTCDateTime(), nullable=False),
    Column("membership_type", _enum(MembershipType), nullable=False),
    Column("source", _enum(ConversionSource), nullable=False),
    Column("had_course_step", Boolean, nullable=False, default=False),
    Column("stage", _enum(ConversionStage), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    # One course row and one member row per identity key. Rows without a city
    # are legacy data: NULLs never collide, so the application check covers them.
    UniqueConstraint("external_member_id", "city", "stage"),
    Index("ix_conversion_member_id", "external_member_id"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Trial, trial_booking_table)
    mapper_registry.map_imperatively(Guest, guest_table)
    mapper_registry.map_imperatively(ConversionRecord, conversion_table)

    orm.configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
