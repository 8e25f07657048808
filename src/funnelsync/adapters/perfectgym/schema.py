"""Pydantic models describing PerfectGym OData payloads.

The API is inconsistent about casing (``StartDate`` on one endpoint,
``startDate`` on another), so every field accepts both spellings.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _either(name: str) -> AliasChoices:
    return AliasChoices(name[0].upper() + name[1:], name)


def _id_to_str(value: object) -> object:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class PerfectGymBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MembershipTypePayload(PerfectGymBaseModel):
    name: str | None = Field(default=None, validation_alias=_either("name"))


class PaymentPlanPayload(PerfectGymBaseModel):
    name: str | None = Field(default=None, validation_alias=_either("name"))
    membership_type: MembershipTypePayload | None = Field(
        default=None, validation_alias=_either("membershipType")
    )


class ContractPayload(PerfectGymBaseModel):
    member_id: str | None = Field(default=None, validation_alias=_either("memberId"))
    start_date: datetime | None = Field(default=None, validation_alias=_either("startDate"))
    is_active: bool | None = Field(default=None, validation_alias=_either("isActive"))
    payment_plan: PaymentPlanPayload | None = Field(
        default=None, validation_alias=_either("paymentPlan")
    )

    _normalize_member_id = field_validator("member_id", mode="before")(_id_to_str)

    @property
    def plan_name(self) -> str:
        if self.payment_plan is None:
            return ""
        return self.payment_plan.name or ""


class MemberPayload(PerfectGymBaseModel):
    id: str = Field(validation_alias=_either("id"))
    number: str | None = Field(default=None, validation_alias=_either("number"))
    home_club_id: int | None = Field(default=None, validation_alias=_either("homeClubId"))
    contracts: list[ContractPayload] = Field(
        default_factory=list, validation_alias=_either("contracts")
    )

    _normalize_ids = field_validator("id", "number", mode="before")(_id_to_str)


class MemberProductPayload(PerfectGymBaseModel):
    member_id: str = Field(validation_alias=_either("memberId"))
    name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("Name", "name", "ProductName", "productName"),
    )
    initial_quantity: int = Field(validation_alias=_either("initialQuantity"))
    current_quantity: int | None = Field(
        default=None, validation_alias=_either("currentQuantity")
    )
    purchase_date: datetime | None = Field(default=None, validation_alias=_either("purchaseDate"))
    is_deleted: bool = Field(default=False, validation_alias=_either("isDeleted"))
    club_id: int | None = Field(default=None, validation_alias=_either("clubId"))
    member: MemberPayload | None = Field(default=None, validation_alias=_either("member"))

    _normalize_member_id = field_validator("member_id", mode="before")(_id_to_str)

    @property
    def facility_id(self) -> int | None:
        """Home club of the member, falling back to the club the product was sold in."""

        if self.member is not None and self.member.home_club_id is not None:
            return self.member.home_club_id
        return self.club_id


class ODataPage(PerfectGymBaseModel):
    next_link: str | None = Field(default=None, validation_alias="@odata.nextLink")


class ContractPage(ODataPage):
    value: list[ContractPayload] = Field(default_factory=list)


class MemberPage(ODataPage):
    value: list[MemberPayload] = Field(default_factory=list)


class MemberProductPage(ODataPage):
    value: list[MemberProductPayload] = Field(default_factory=list)
