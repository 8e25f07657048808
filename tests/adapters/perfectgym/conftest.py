from __future__ import annotations

import pytest

from funnelsync.config import TenantConfig


@pytest.fixture
def tenant() -> TenantConfig:
    return TenantConfig(
        country_code="DE",
        client_id="client",
        client_secret="secret",  # noqa: S106
        api_url="https://pg.example.test",
    )
