"""City and tenant resolution.

Each tenant (country portal) numbers its facilities independently, so facility
"1" is Amsterdam on the NL portal and Berlin on the DE portal. Resolution is a
pure lookup: unknown labels and ids resolve to ``None`` and the caller decides
how to record the miss.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from collections.abc import Mapping

TENANT_CITIES: Final[Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        "NL": ("amsterdam", "rotterdam", "antwerp"),
        "DE": ("berlin", "cologne", "munich"),
        "CH": ("zurich", "basel"),
        "AT": ("vienna",),
    }
)

FACILITY_CITIES: Final[Mapping[str, Mapping[int, str]]] = MappingProxyType(
    {
        "NL": MappingProxyType({1: "amsterdam", 5: "rotterdam", 6: "antwerp"}),
        "DE": MappingProxyType({1: "berlin", 5: "cologne", 6: "munich"}),
        "CH": MappingProxyType({1: "zurich", 4: "basel"}),
        "AT": MappingProxyType({1: "vienna"}),
    }
)

CITY_ALIASES: Final[Mapping[str, str]] = MappingProxyType(
    {
        "antwerpen": "antwerp",
        "köln": "cologne",
        "koeln": "cologne",
        "münchen": "munich",
        "muenchen": "munich",
        "zürich": "zurich",
        "zuerich": "zurich",
        "wien": "vienna",
    }
)


def _fold(label: str) -> str:
    composed = unicodedata.normalize("NFC", label)
    return " ".join(composed.split()).casefold()


@dataclass(frozen=True, slots=True)
class CityResolver:
    tenant_cities: Mapping[str, tuple[str, ...]] = field(default=TENANT_CITIES)
    facility_cities: Mapping[str, Mapping[int, str]] = field(default=FACILITY_CITIES)
    aliases: Mapping[str, str] = field(default=CITY_ALIASES)

    @property
    def tenant_codes(self) -> tuple[str, ...]:
        return tuple(self.tenant_cities)

    def normalize(self, city_label: str) -> str:
        """Canonical city name: case, whitespace and known spelling variants folded."""

        folded = _fold(city_label)
        return self.aliases.get(folded, folded)

    def resolve_tenant(self, city_label: str | None) -> str | None:
        if not city_label or not city_label.strip():
            return None
        city = self.normalize(city_label)
        for tenant, cities in self.tenant_cities.items():
            if city in cities:
                return tenant
        return None

    def resolve_city(self, tenant: str, facility_id: int | str | None) -> str | None:
        if facility_id is None:
            return None
        try:
            facility = int(facility_id)
        except (TypeError, ValueError):
            return None
        facilities = self.facility_cities.get(tenant.upper())
        if facilities is None:
            return None
        return facilities.get(facility)

    def cities_for(self, tenant: str) -> tuple[str, ...]:
        return self.tenant_cities.get(tenant.upper(), ())

    def is_known_tenant(self, tenant: str) -> bool:
        return tenant.upper() in self.tenant_cities
