"""Validation of intake event payloads into domain commands."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Literal, cast

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from funnelsync.domain.errors import IntakeValidationError
from funnelsync.domain.intake import (
    CLASS_BOOKING_EVENTS,
    ClassBookingChanged,
    ContractCreated,
    CoursePurchased,
)
from funnelsync.domain.model import COURSE_PACKAGE_SIZES

if TYPE_CHECKING:
    from funnelsync.domain.intake import IntakeCommand


def _member_id(value: object) -> object:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class IntakeBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ContractCreatedData(IntakeBaseModel):
    user_id: str = Field(alias="userId", min_length=1)
    contract_sign_date: datetime = Field(alias="contractSignDate")
    payment_plan_name: str = Field(alias="paymentPlanName", min_length=1)

    _normalize_user_id = field_validator("user_id", mode="before")(_member_id)


class BookingUser(IntakeBaseModel):
    user_id: str = Field(alias="userId", min_length=1)

    _normalize_user_id = field_validator("user_id", mode="before")(_member_id)


class ClassBookingData(IntakeBaseModel):
    user_id: str | None = Field(default=None, alias="userId")
    user: BookingUser | None = None
    city: str | None = None

    _normalize_user_id = field_validator("user_id", mode="before")(_member_id)

    @model_validator(mode="after")
    def _require_user(self) -> ClassBookingData:
        if not self.user_id and self.user is None:
            raise ValueError("userId is required")
        return self

    @property
    def member_id(self) -> str:
        if self.user_id:
            return self.user_id
        return self.user.user_id if self.user is not None else ""


class PurchaseData(IntakeBaseModel):
    member_id: str = Field(alias="memberId", min_length=1)
    city: str = Field(min_length=1)
    start_date: datetime = Field(validation_alias=AliasChoices("start_date", "startDate"))
    credits: int

    _normalize_member_id = field_validator("member_id", mode="before")(_member_id)

    @field_validator("credits")
    @classmethod
    def _course_package(cls, value: int) -> int:
        if value not in COURSE_PACKAGE_SIZES:
            raise ValueError("credits must be 10 or 16")
        return value


class ContractCreatedEvent(IntakeBaseModel):
    event: Literal["ContractCreated"]
    data: ContractCreatedData


class ClassBookingEvent(IntakeBaseModel):
    event: str
    data: ClassBookingData

    @field_validator("event")
    @classmethod
    def _supported(cls, value: str) -> str:
        if value not in CLASS_BOOKING_EVENTS:
            raise ValueError(f"unsupported class booking event {value!r}")
        return value


class PurchaseEvent(IntakeBaseModel):
    event: Literal["Purchase"] = "Purchase"
    data: PurchaseData

    @model_validator(mode="before")
    @classmethod
    def _accept_flat_payload(cls, value: object) -> object:
        # Purchase events may carry their fields at the top level.
        if isinstance(value, Mapping):
            payload = cast(Mapping[str, object], value)
            if "data" not in payload:
                return {"event": payload.get("event", "Purchase"), "data": dict(payload)}
        return value


def parse_intake_event(payload: object) -> IntakeCommand:
    """Validate a raw event payload and turn it into an intake command.

    Raises ``IntakeValidationError`` for unknown events and malformed payloads.
    """

    if not isinstance(payload, Mapping):
        raise IntakeValidationError("Event payload must be a JSON object")
    event = cast(Mapping[str, object], payload).get("event")
    if not isinstance(event, str):
        raise IntakeValidationError("Event payload is missing the \"event\" name")

    try:
        if event == "ContractCreated":
            contract = ContractCreatedEvent.model_validate(payload).data
            return ContractCreated(
                external_member_id=contract.user_id,
                signed_at=contract.contract_sign_date,
                plan_name=contract.payment_plan_name,
            )
        if event in CLASS_BOOKING_EVENTS:
            booking = ClassBookingEvent.model_validate(payload)
            return ClassBookingChanged(
                event=booking.event,
                external_member_id=booking.data.member_id,
                city=booking.data.city or None,
            )
        if event == "Purchase":
            purchase = PurchaseEvent.model_validate(payload).data
            return CoursePurchased(
                external_member_id=purchase.member_id,
                city=purchase.city,
                start_date=purchase.start_date,
                credits=purchase.credits,
            )
    except ValidationError as exc:
        raise IntakeValidationError(f"Invalid {event} payload: {exc}") from exc

    raise IntakeValidationError(f"Unsupported event {event!r}")
