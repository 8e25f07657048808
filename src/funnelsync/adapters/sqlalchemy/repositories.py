"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from funnelsync.adapters.sqlalchemy.mappings import (
    conversion_table,
    guest_table,
    trial_booking_table,
)
from funnelsync.domain.model import ConversionRecord, ConversionStage, Guest, IdentityKey, Trial

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.orm import Session

    from funnelsync.domain.model import ConversionPatch

log = logging.getLogger(__name__)


class SqlAlchemyConversionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: ConversionRecord) -> None:
        self.session.add(entity)

    def get(self, record_id: UUID) -> ConversionRecord | None:
        return self.session.get(ConversionRecord, record_id)

    def list_conversions(self) -> list[ConversionRecord]:
        stmt = select(ConversionRecord).order_by(conversion_table.c.created_at)
        return list(self.session.execute(stmt).scalars())

    def find_conversions(
        self, external_member_id: str, city: str | None
    ) -> list[ConversionRecord]:
        """Records for the identity key; rows without a city match any city."""

        stmt = select(ConversionRecord).where(
            conversion_table.c.external_member_id == external_member_id
        )
        if city is None:
            stmt = stmt.where(conversion_table.c.city.is_(None))
        else:
            stmt = stmt.where(
                or_(conversion_table.c.city == city, conversion_table.c.city.is_(None))
            )
        return list(self.session.execute(stmt.order_by(conversion_table.c.created_at)).scalars())

    def find_by_member_id(self, external_member_id: str) -> list[ConversionRecord]:
        """Every record for the member id, across all cities."""

        stmt = (
            select(ConversionRecord)
            .where(conversion_table.c.external_member_id == external_member_id)
            .order_by(conversion_table.c.created_at)
        )
        return list(self.session.execute(stmt).scalars())

    def find_existing_conversion_keys(
        self, *, stages: Iterable[ConversionStage] = (ConversionStage.MEMBER,)
    ) -> set[IdentityKey]:
        stmt = select(conversion_table.c.external_member_id, conversion_table.c.city).where(
            conversion_table.c.stage.in_(list(stages))
        )
        return {IdentityKey(member_id, city) for member_id, city in self.session.execute(stmt)}

    def upsert_conversion(self, record: ConversionRecord) -> bool:
        """Insert ``record`` unless its identity key already has a row for the same stage.

        Returns ``False`` when nothing was written, including when a concurrent
        run inserted the same row first.
        """

        existing = self.find_conversions(record.external_member_id, record.city)
        if any(row.stage == record.stage for row in existing):
            return False
        try:
            with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError:
            log.info(
                "Conversion %s (%s) was inserted concurrently, keeping the stored row",
                record.identity_key,
                record.stage,
            )
            return False
        return True

    def update_conversion(self, record_id: UUID, patch: ConversionPatch) -> ConversionRecord:
        record = self.get(record_id)
        if record is None:
            raise LookupError(f"Conversion {record_id} does not exist")
        record.apply(patch)
        self.session.flush()
        return record


class SqlAlchemyTrialRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Trial) -> None:
        self.session.add(entity)

    def list_with_member_id(self) -> list[Trial]:
        stmt = (
            select(Trial)
            .where(trial_booking_table.c.external_member_id.is_not(None))
            .where(trial_booking_table.c.external_member_id != "")
            .order_by(trial_booking_table.c.created_at)
        )
        return list(self.session.execute(stmt).scalars())

    def find_by_member_id(self, external_member_id: str) -> list[Trial]:
        stmt = (
            select(Trial)
            .where(trial_booking_table.c.external_member_id == external_member_id)
            .order_by(trial_booking_table.c.created_at.desc())
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyGuestRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Guest) -> None:
        self.session.add(entity)

    def get(self, external_member_id: str, country: str) -> Guest | None:
        stmt = (
            select(Guest)
            .where(guest_table.c.external_member_id == external_member_id)
            .where(guest_table.c.country == country.upper())
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_member_id(self, external_member_id: str) -> list[Guest]:
        stmt = (
            select(Guest)
            .where(guest_table.c.external_member_id == external_member_id)
            .order_by(guest_table.c.updated_at.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def list_for_country(self, country: str) -> list[Guest]:
        stmt = (
            select(Guest)
            .where(guest_table.c.country == country.upper())
            .order_by(guest_table.c.created_at)
        )
        return list(self.session.execute(stmt).scalars())

    def list_unconverted(self, country: str | None = None) -> list[Guest]:
        stmt = select(Guest).where(guest_table.c.converted_at.is_(None))
        if country is not None:
            stmt = stmt.where(guest_table.c.country == country.upper())
        return list(self.session.execute(stmt.order_by(guest_table.c.created_at)).scalars())

    def mark_guest_converted(
        self, external_member_id: str, when: datetime, *, country: str
    ) -> bool:
        guest = self.get(external_member_id, country)
        if guest is None:
            log.warning(
                "Guest %s on %s not found, cannot mark converted", external_member_id, country
            )
            return False
        return guest.mark_converted(when)


if TYPE_CHECKING:
    from funnelsync.domain.ports import ConversionRepository, GuestRepository, TrialRepository

    def _repository_checks(session: Session) -> None:
        _conversions: ConversionRepository = SqlAlchemyConversionRepository(session)
        _trials: TrialRepository = SqlAlchemyTrialRepository(session)
        _guests: GuestRepository = SqlAlchemyGuestRepository(session)
