"""HTTP client for one PerfectGym tenant's OData API."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

import httpx

from funnelsync.adapters.http_resilience import ResilientClient, build_limiter
from funnelsync.domain.errors import PlatformUnavailableError

from .schema import ContractPage, MemberPage, MemberProductPage, ODataPage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from aiolimiter import AsyncLimiter

    from funnelsync.adapters.http_resilience import ResilienceConfig
    from funnelsync.config.tenants import TenantConfig

    from .schema import ContractPayload, MemberPayload, MemberProductPayload

log = getLogger(__name__)

ODATA_PATH = "/Api/v2.2/odata"
COURSE_QUANTITY_FILTER = "(initialQuantity eq 10 or initialQuantity eq 16)"
# Guards against a server that keeps handing out the same next link.
MAX_PAGES = 1000


class ClientFactory(Protocol):
    def __call__(
        self, config: ResilienceConfig, *, limiter: AsyncLimiter | None = None
    ) -> ResilientClient: ...


def default_client_factory(
    config: ResilienceConfig, *, limiter: AsyncLimiter | None = None
) -> ResilientClient:
    return ResilientClient(config, limiter=limiter)


@dataclass(slots=True)
class PerfectGymClient:
    """Raw OData access; translation to domain facts happens in the gateway.

    Single-record calls return ``None`` on 404. Timeouts, transport errors,
    other non-2xx responses and unreadable payloads raise
    ``PlatformUnavailableError``. Every request of one tenant goes through the
    same rate limiter, including concurrent bulk fetches.
    """

    tenant: TenantConfig
    client_factory: ClientFactory = field(default=default_client_factory)
    _limiter: AsyncLimiter | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self._limiter = build_limiter(self.tenant.resilience())

    @property
    def country_code(self) -> str:
        return self.tenant.country_code

    async def latest_active_contract(self, member_id: str) -> ContractPayload | None:
        params = {
            "$filter": f"MemberId eq {member_id} and IsActive eq true",
            "$expand": "PaymentPlan($expand=MembershipType)",
            "$orderby": "StartDate desc",
            "$top": "1",
        }
        async with self._client() as client:
            page = await self._fetch_page(
                client,
                f"{ODATA_PATH}/Contracts",
                ContractPage,
                params=params,
                timeout=self.tenant.single_record_timeout,
                allow_missing=True,
            )
        if page is None or not page.value:
            return None
        return page.value[0]

    async def latest_course_product(self, member_id: str) -> MemberProductPayload | None:
        params = {
            "$filter": f"MemberId eq {member_id} and {COURSE_QUANTITY_FILTER}",
            "$orderby": "PurchaseDate desc",
            "$top": "1",
        }
        async with self._client() as client:
            page = await self._fetch_page(
                client,
                f"{ODATA_PATH}/MemberProducts",
                MemberProductPage,
                params=params,
                timeout=self.tenant.single_record_timeout,
                allow_missing=True,
            )
        if page is None or not page.value:
            return None
        return page.value[0]

    async def members_with_active_contracts(self) -> list[MemberPayload]:
        params = {
            "$filter": "memberType eq 'Member'",
            "$expand": (
                "Contracts($filter=IsActive eq true;$orderby=startDate desc;$top=1;"
                "$expand=PaymentPlan($select=Name))"
            ),
        }
        members: list[MemberPayload] = []
        async with self._client() as client:
            async for page in self._paginate(client, f"{ODATA_PATH}/Members", MemberPage, params):
                members.extend(page.value)
        log.debug("Fetched %d members from %s", len(members), self.country_code)
        return members

    async def course_products(self) -> list[MemberProductPayload]:
        params = {
            "$filter": COURSE_QUANTITY_FILTER,
            "$expand": "Member($select=id,number,homeClubId)",
            "$select": (
                "MemberId,Name,InitialQuantity,CurrentQuantity,PurchaseDate,IsDeleted,ClubId"
            ),
        }
        products: list[MemberProductPayload] = []
        async with self._client() as client:
            async for page in self._paginate(
                client, f"{ODATA_PATH}/MemberProducts", MemberProductPage, params
            ):
                products.extend(page.value)
        log.debug("Fetched %d course products from %s", len(products), self.country_code)
        return products

    def _client(self) -> ResilientClient:
        return self.client_factory(self.tenant.resilience(), limiter=self._limiter)

    async def _paginate[TPage: ODataPage](
        self,
        client: ResilientClient,
        url: str,
        page_type: type[TPage],
        params: Mapping[str, str],
    ) -> AsyncIterator[TPage]:
        next_url: str | None = url
        next_params: Mapping[str, str] | None = params
        pages = 0
        while next_url is not None:
            page = await self._fetch_page(
                client,
                next_url,
                page_type,
                params=next_params,
                timeout=self.tenant.bulk_timeout,
            )
            if page is None:
                break
            yield page
            pages += 1
            if pages >= MAX_PAGES:
                raise PlatformUnavailableError(
                    f"pagination did not terminate after {MAX_PAGES} pages",
                    tenant=self.country_code,
                )
            # The next link already carries the query.
            next_url, next_params = page.next_link, None

    async def _fetch_page[TPage: ODataPage](
        self,
        client: ResilientClient,
        url: str,
        page_type: type[TPage],
        *,
        params: Mapping[str, str] | None,
        timeout: float,
        allow_missing: bool = False,
    ) -> TPage | None:
        try:
            response = await client.get(url, params=params, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise PlatformUnavailableError(
                f"request to {url} timed out after {timeout:g}s", tenant=self.country_code
            ) from exc
        except httpx.HTTPError as exc:
            raise PlatformUnavailableError(
                f"request to {url} failed: {exc}", tenant=self.country_code
            ) from exc

        if allow_missing and response.status_code == httpx.codes.NOT_FOUND:
            return None
        if not response.is_success:
            log.warning(
                "PerfectGym %s returned %s for %s", self.country_code, response.status_code, url
            )
            raise PlatformUnavailableError(
                f"{url} returned HTTP {response.status_code}",
                tenant=self.country_code,
                status_code=response.status_code,
            )

        try:
            return page_type.model_validate(response.json())
        except ValueError as exc:
            raise PlatformUnavailableError(
                f"unreadable payload from {url}: {exc}", tenant=self.country_code
            ) from exc
