"""
SpaceTraders game API client.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from shared.config import DEFAULT_API_URL
from shared.logging import get_logger
from ..caching.response_cache import ResponseCache, get_cache_ttl
from ..ratelimit.interceptor import (
    DEFAULT_RETRY_WAIT_MS,
    RateLimitInfo,
    RateLimitInterceptor,
    UpstreamCall,
)


def _compact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset optional body fields."""
    return {key: value for key, value in fields.items() if value is not None}


class SpaceTradersClient:
    """
    One coroutine per upstream endpoint.

    Every call runs through a RateLimitInterceptor which owns the rate-limit
    state and writes cacheable GET responses to the ResponseCache. Methods
    return the decoded JSON body as-is.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        token: str = "",
        cache: Optional[ResponseCache] = None,
        *,
        timeout: float = 30.0,
        default_retry_wait_ms: int = DEFAULT_RETRY_WAIT_MS,
        read_through: bool = False,
        metrics=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.cache = cache
        self.read_through = read_through
        self.logger = get_logger("proxy.spacetraders_client")
        self.interceptor = RateLimitInterceptor(
            cache,
            default_wait_ms=default_retry_wait_ms,
            sleep=sleep,
            metrics=metrics,
        )
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {token}",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SpaceTradersClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, call: UpstreamCall) -> httpx.Response:
        return await self._client.request(
            call.method,
            call.path,
            params=call.params,
            json=call.body,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Issue a request through the interceptor and return the decoded body."""
        call = UpstreamCall(method=method.upper(), path=path, params=params, body=body)

        if (
            self.read_through
            and self.cache is not None
            and call.method == "GET"
            and get_cache_ttl(path) > 0
        ):
            cached = await self.cache.lookup(call.method, path, params)
            if cached is not None:
                self.logger.debug("Serving cached response", path=path, params=params)
                return cached

        response = await self.interceptor.execute(call, self._send)
        if not response.content:
            return None
        return response.json()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def _post(self, path: str, body: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("POST", path, body=body)

    # Agent endpoints

    async def get_agent(self) -> Any:
        return await self._get("/my/agent")

    async def register_agent(self, symbol: str, faction: str, email: Optional[str] = None) -> Any:
        return await self._post("/register", _compact({
            "symbol": symbol,
            "faction": faction,
            "email": email,
        }))

    # Fleet endpoints

    async def get_fleet(self) -> Any:
        return await self._get("/my/ships")

    async def get_ship(self, ship_symbol: str) -> Any:
        return await self._get(f"/my/ships/{ship_symbol}")

    async def purchase_ship(self, ship_type: str, waypoint_symbol: str) -> Any:
        return await self._post("/my/ships", {
            "shipType": ship_type,
            "waypointSymbol": waypoint_symbol,
        })

    async def navigate_ship(self, ship_symbol: str, waypoint_symbol: str) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/navigate", {
            "waypointSymbol": waypoint_symbol,
        })

    async def dock_ship(self, ship_symbol: str) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/dock")

    async def orbit_ship(self, ship_symbol: str) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/orbit")

    async def refuel_ship(
        self,
        ship_symbol: str,
        units: Optional[int] = None,
        from_cargo: Optional[bool] = None,
    ) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/refuel", _compact({
            "units": units,
            "fromCargo": from_cargo,
        }))

    async def extract_resources(self, ship_symbol: str) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/extract")

    async def sell_cargo(self, ship_symbol: str, symbol: str, units: int) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/sell", {
            "symbol": symbol,
            "units": units,
        })

    async def purchase_cargo(self, ship_symbol: str, symbol: str, units: int) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/purchase", {
            "symbol": symbol,
            "units": units,
        })

    async def transfer_cargo(
        self,
        from_ship_symbol: str,
        trade_symbol: str,
        units: int,
        to_ship_symbol: str,
    ) -> Any:
        return await self._post(f"/my/ships/{from_ship_symbol}/transfer", {
            "tradeSymbol": trade_symbol,
            "units": units,
            "shipSymbol": to_ship_symbol,
        })

    async def jettison(self, ship_symbol: str, symbol: str, units: int) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/jettison", {
            "symbol": symbol,
            "units": units,
        })

    async def scan_systems(self, ship_symbol: str) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/scan/systems")

    async def scan_waypoints(self, ship_symbol: str) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/scan/waypoints")

    async def scan_ships(self, ship_symbol: str) -> Any:
        return await self._post(f"/my/ships/{ship_symbol}/scan/ships")

    # Contract endpoints

    async def get_contracts(self, page: int = 1, limit: int = 20) -> Any:
        return await self._get("/my/contracts", {"page": page, "limit": limit})

    async def get_contract(self, contract_id: str) -> Any:
        return await self._get(f"/my/contracts/{contract_id}")

    async def accept_contract(self, contract_id: str) -> Any:
        return await self._post(f"/my/contracts/{contract_id}/accept")

    async def deliver_contract(
        self,
        contract_id: str,
        ship_symbol: str,
        trade_symbol: str,
        units: int,
    ) -> Any:
        return await self._post(f"/my/contracts/{contract_id}/deliver", {
            "shipSymbol": ship_symbol,
            "tradeSymbol": trade_symbol,
            "units": units,
        })

    async def fulfill_contract(self, contract_id: str) -> Any:
        return await self._post(f"/my/contracts/{contract_id}/fulfill")

    # System endpoints

    async def get_systems(self, page: int = 1, limit: int = 20) -> Any:
        return await self._get("/systems", {"page": page, "limit": limit})

    async def get_system(self, system_symbol: str) -> Any:
        return await self._get(f"/systems/{system_symbol}")

    async def get_waypoints(self, system_symbol: str, page: int = 1, limit: int = 20) -> Any:
        return await self._get(f"/systems/{system_symbol}/waypoints", {"page": page, "limit": limit})

    async def get_waypoint(self, system_symbol: str, waypoint_symbol: str) -> Any:
        return await self._get(f"/systems/{system_symbol}/waypoints/{waypoint_symbol}")

    async def get_market(self, system_symbol: str, waypoint_symbol: str) -> Any:
        return await self._get(f"/systems/{system_symbol}/waypoints/{waypoint_symbol}/market")

    async def get_shipyard(self, system_symbol: str, waypoint_symbol: str) -> Any:
        return await self._get(f"/systems/{system_symbol}/waypoints/{waypoint_symbol}/shipyard")

    async def get_jump_gate(self, system_symbol: str, waypoint_symbol: str) -> Any:
        return await self._get(f"/systems/{system_symbol}/waypoints/{waypoint_symbol}/jump-gate")

    async def get_construction(self, system_symbol: str, waypoint_symbol: str) -> Any:
        return await self._get(f"/systems/{system_symbol}/waypoints/{waypoint_symbol}/construction")

    async def supply_construction(
        self,
        system_symbol: str,
        waypoint_symbol: str,
        ship_symbol: str,
        trade_symbol: str,
        units: int,
    ) -> Any:
        return await self._post(
            f"/systems/{system_symbol}/waypoints/{waypoint_symbol}/construction/supply",
            {
                "shipSymbol": ship_symbol,
                "tradeSymbol": trade_symbol,
                "units": units,
            },
        )

    # Faction endpoints

    async def get_factions(self, page: int = 1, limit: int = 20) -> Any:
        return await self._get("/factions", {"page": page, "limit": limit})

    async def get_faction(self, faction_symbol: str) -> Any:
        return await self._get(f"/factions/{faction_symbol}")

    # Rate limit status

    def get_rate_limit_status(self) -> Optional[RateLimitInfo]:
        return self.interceptor.get_rate_limit_status()

    def is_rate_limited(self) -> bool:
        return self.interceptor.is_rate_limited()

    def seconds_until_reset(self) -> float:
        return self.interceptor.seconds_until_reset()
