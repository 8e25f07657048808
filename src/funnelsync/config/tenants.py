"""Per-tenant membership platform credentials.

Each country runs its own PerfectGym deployment ("portal"). Credentials are read
from the environment once at start-up and handed to the platform adapter as
explicit :class:`TenantConfig` values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from .env import optional_env_var, require_env_vars
from .errors import MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig
from .sync import BULK_TIMEOUT_SECONDS, SINGLE_RECORD_TIMEOUT_SECONDS

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

log = logging.getLogger(__name__)

DEFAULT_API_URLS: Final[Mapping[str, str]] = MappingProxyType(
    {
        "DE": "https://12rounds-de.perfectgym.com",
        "NL": "https://boxingcommunity.perfectgym.com",
        "CH": "https://12rounds-ch.perfectgym.com",
        "AT": "https://12rounds-at.perfectgym.com",
    }
)


@dataclass(frozen=True)
class TenantConfig:
    """Connection settings for one country's membership platform."""

    country_code: str
    client_id: str
    client_secret: str = field(repr=False)
    api_url: str
    single_record_timeout: float = SINGLE_RECORD_TIMEOUT_SECONDS
    bulk_timeout: float = BULK_TIMEOUT_SECONDS

    @property
    def auth_headers(self) -> dict[str, str]:
        return {
            "x-Client-id": self.client_id,
            "x-Client-Secret": self.client_secret,
            "Accept": "application/json",
        }

    def resilience(self) -> ResilienceConfig:
        return ResilienceConfig(
            name=f"perfectgym-{self.country_code.lower()}",
            base_url=self.api_url,
            timeout_seconds=self.bulk_timeout,
            ratelimit=RateLimit(max_calls=8, per_seconds=1.0),
            default_headers=self.auth_headers,
        )


def get_tenant_config(country_code: str) -> TenantConfig:
    code = country_code.upper()
    prefix = f"PERFECTGYM_{code}"
    values = require_env_vars((f"{prefix}_CLIENT_ID", f"{prefix}_CLIENT_SECRET"))
    api_url = optional_env_var(f"{prefix}_API_URL", DEFAULT_API_URLS.get(code, ""))
    if not api_url:
        raise MissingConfigurationError(f"Missing configuration for: {prefix}_API_URL")
    return TenantConfig(
        country_code=code,
        client_id=values[f"{prefix}_CLIENT_ID"],
        client_secret=values[f"{prefix}_CLIENT_SECRET"],
        api_url=api_url.rstrip("/"),
    )


def get_tenant_configs(country_codes: Iterable[str] = DEFAULT_API_URLS) -> dict[str, TenantConfig]:
    """Load every tenant that has credentials; tenants without them are left out.

    A missing tenant is not fatal here: the reconciliation run reports it as a soft
    failure for the candidates that belong to it.
    """

    configs: dict[str, TenantConfig] = {}
    for code in country_codes:
        try:
            configs[code.upper()] = get_tenant_config(code)
        except MissingConfigurationError as exc:
            log.warning("Tenant %s not configured: %s", code, exc)
    return configs
