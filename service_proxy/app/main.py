"""
SpaceTraders proxy service.
"""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import ValidationError
from .adapters.spacetraders_client import SpaceTradersClient
from .caching.memory_store import InMemoryStore
from .caching.redis_store import RedisStore
from .caching.response_cache import ResponseCache
from .domain.auth_middleware import BearerTokenGuard


async def _read_body(request: Request) -> Dict[str, Any]:
    """Decode a JSON object body; an empty body is an empty object."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise ValidationError("Request body must be valid JSON.")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


def _require(body: Dict[str, Any], *fields: str) -> None:
    missing = [name for name in fields if not body.get(name)]
    if not missing:
        return
    if len(fields) == 1:
        message = f"{fields[0]} is required."
    else:
        message = f"{', '.join(fields[:-1])} and {fields[-1]} are required."
    raise ValidationError(message, details={"missing": missing})


def _page_param(raw: Optional[str], default: int) -> int:
    """Positive integer query value; anything else falls back to the default."""
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


class ProxyService(BaseService):
    """SpaceTraders proxy service implementation."""

    def __init__(
        self,
        client: Optional[SpaceTradersClient] = None,
        **config_overrides,
    ):
        super().__init__("proxy", **config_overrides)

        if self.config.cache_backend == "redis":
            self.store = RedisStore(self.config.redis_url)
        else:
            self.store = InMemoryStore()
        self.cache = ResponseCache(self.store, metrics=self.metrics)

        self.client = client or SpaceTradersClient(
            self.config.spacetraders_api_url,
            self.config.spacetraders_token,
            self.cache,
            timeout=self.config.request_timeout_seconds,
            default_retry_wait_ms=self.config.rate_limit_default_wait_ms,
            read_through=self.config.cache_read_through,
            metrics=self.metrics,
        )
        self.auth_guard = BearerTokenGuard(self.config.spacetraders_token)

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.client.aclose()
            await self.store.close()

        router = APIRouter(prefix="/api")
        self._setup_agent_routes(router)
        self._setup_fleet_routes(router)
        self._setup_contract_routes(router)
        self._setup_system_routes(router)
        self._setup_faction_routes(router)
        self._setup_status_routes(router)
        self.app.include_router(router)

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    async def _check_dependencies(self) -> Dict[str, str]:
        if isinstance(self.store, RedisStore):
            return {"redis": "ok" if await self.store.ping() else "error"}
        return {"cache": "memory"}

    def _setup_agent_routes(self, router: APIRouter):
        client = self.client
        guard = [Depends(self.auth_guard)]

        @router.get("/my/agent", dependencies=guard)
        async def get_agent():
            return await client.get_agent()

        @router.post("/register")
        async def register_agent(request: Request):
            body = await _read_body(request)
            _require(body, "symbol", "faction")
            result = await client.register_agent(body["symbol"], body["faction"], body.get("email"))
            return JSONResponse(status_code=201, content=result)

    def _setup_fleet_routes(self, router: APIRouter):
        client = self.client
        guard = [Depends(self.auth_guard)]

        @router.get("/my/ships", dependencies=guard)
        async def get_fleet():
            return await client.get_fleet()

        @router.get("/my/ships/{ship_symbol}", dependencies=guard)
        async def get_ship(ship_symbol: str):
            return await client.get_ship(ship_symbol)

        @router.post("/my/ships", dependencies=guard)
        async def purchase_ship(request: Request):
            body = await _read_body(request)
            _require(body, "shipType", "waypointSymbol")
            result = await client.purchase_ship(body["shipType"], body["waypointSymbol"])
            return JSONResponse(status_code=201, content=result)

        @router.post("/my/ships/{ship_symbol}/navigate", dependencies=guard)
        async def navigate_ship(ship_symbol: str, request: Request):
            body = await _read_body(request)
            _require(body, "waypointSymbol")
            return await client.navigate_ship(ship_symbol, body["waypointSymbol"])

        @router.post("/my/ships/{ship_symbol}/dock", dependencies=guard)
        async def dock_ship(ship_symbol: str):
            return await client.dock_ship(ship_symbol)

        @router.post("/my/ships/{ship_symbol}/orbit", dependencies=guard)
        async def orbit_ship(ship_symbol: str):
            return await client.orbit_ship(ship_symbol)

        @router.post("/my/ships/{ship_symbol}/refuel", dependencies=guard)
        async def refuel_ship(ship_symbol: str, request: Request):
            body = await _read_body(request)
            return await client.refuel_ship(ship_symbol, body.get("units"), body.get("fromCargo"))

        @router.post("/my/ships/{ship_symbol}/extract", dependencies=guard)
        async def extract_resources(ship_symbol: str):
            return await client.extract_resources(ship_symbol)

        @router.post("/my/ships/{ship_symbol}/sell", dependencies=guard)
        async def sell_cargo(ship_symbol: str, request: Request):
            body = await _read_body(request)
            _require(body, "symbol", "units")
            return await client.sell_cargo(ship_symbol, body["symbol"], body["units"])

        @router.post("/my/ships/{ship_symbol}/purchase", dependencies=guard)
        async def purchase_cargo(ship_symbol: str, request: Request):
            body = await _read_body(request)
            _require(body, "symbol", "units")
            return await client.purchase_cargo(ship_symbol, body["symbol"], body["units"])

        @router.post("/my/ships/{ship_symbol}/transfer", dependencies=guard)
        async def transfer_cargo(ship_symbol: str, request: Request):
            body = await _read_body(request)
            _require(body, "tradeSymbol", "units", "toShipSymbol")
            return await client.transfer_cargo(
                ship_symbol, body["tradeSymbol"], body["units"], body["toShipSymbol"]
            )

        @router.post("/my/ships/{ship_symbol}/jettison", dependencies=guard)
        async def jettison(ship_symbol: str, request: Request):
            body = await _read_body(request)
            _require(body, "symbol", "units")
            return await client.jettison(ship_symbol, body["symbol"], body["units"])

        @router.post("/my/ships/{ship_symbol}/scan/systems", dependencies=guard)
        async def scan_systems(ship_symbol: str):
            return await client.scan_systems(ship_symbol)

        @router.post("/my/ships/{ship_symbol}/scan/waypoints", dependencies=guard)
        async def scan_waypoints(ship_symbol: str):
            return await client.scan_waypoints(ship_symbol)

        @router.post("/my/ships/{ship_symbol}/scan/ships", dependencies=guard)
        async def scan_ships(ship_symbol: str):
            return await client.scan_ships(ship_symbol)

    def _setup_contract_routes(self, router: APIRouter):
        client = self.client
        guard = [Depends(self.auth_guard)]

        @router.get("/my/contracts", dependencies=guard)
        async def get_contracts(page: Optional[str] = None, limit: Optional[str] = None):
            return await client.get_contracts(_page_param(page, 1), _page_param(limit, 20))

        @router.get("/my/contracts/{contract_id}", dependencies=guard)
        async def get_contract(contract_id: str):
            return await client.get_contract(contract_id)

        @router.post("/my/contracts/{contract_id}/accept", dependencies=guard)
        async def accept_contract(contract_id: str):
            return await client.accept_contract(contract_id)

        @router.post("/my/contracts/{contract_id}/deliver", dependencies=guard)
        async def deliver_contract(contract_id: str, request: Request):
            body = await _read_body(request)
            _require(body, "shipSymbol", "tradeSymbol", "units")
            return await client.deliver_contract(
                contract_id, body["shipSymbol"], body["tradeSymbol"], body["units"]
            )

        @router.post("/my/contracts/{contract_id}/fulfill", dependencies=guard)
        async def fulfill_contract(contract_id: str):
            return await client.fulfill_contract(contract_id)

    def _setup_system_routes(self, router: APIRouter):
        client = self.client

        @router.get("/systems")
        async def get_systems(page: Optional[str] = None, limit: Optional[str] = None):
            return await client.get_systems(_page_param(page, 1), _page_param(limit, 20))

        @router.get("/systems/{system_symbol}")
        async def get_system(system_symbol: str):
            return await client.get_system(system_symbol)

        @router.get("/systems/{system_symbol}/waypoints")
        async def get_waypoints(
            system_symbol: str,
            page: Optional[str] = None,
            limit: Optional[str] = None,
        ):
            return await client.get_waypoints(system_symbol, _page_param(page, 1), _page_param(limit, 20))

        @router.get("/systems/{system_symbol}/waypoints/{waypoint_symbol}")
        async def get_waypoint(system_symbol: str, waypoint_symbol: str):
            return await client.get_waypoint(system_symbol, waypoint_symbol)

        @router.get("/systems/{system_symbol}/waypoints/{waypoint_symbol}/market")
        async def get_market(system_symbol: str, waypoint_symbol: str):
            return await client.get_market(system_symbol, waypoint_symbol)

        @router.get("/systems/{system_symbol}/waypoints/{waypoint_symbol}/shipyard")
        async def get_shipyard(system_symbol: str, waypoint_symbol: str):
            return await client.get_shipyard(system_symbol, waypoint_symbol)

        @router.get("/systems/{system_symbol}/waypoints/{waypoint_symbol}/jump-gate")
        async def get_jump_gate(system_symbol: str, waypoint_symbol: str):
            return await client.get_jump_gate(system_symbol, waypoint_symbol)

        @router.get("/systems/{system_symbol}/waypoints/{waypoint_symbol}/construction")
        async def get_construction(system_symbol: str, waypoint_symbol: str):
            return await client.get_construction(system_symbol, waypoint_symbol)

        @router.post("/systems/{system_symbol}/waypoints/{waypoint_symbol}/construction/supply")
        async def supply_construction(system_symbol: str, waypoint_symbol: str, request: Request):
            body = await _read_body(request)
            _require(body, "shipSymbol", "tradeSymbol", "units")
            return await client.supply_construction(
                system_symbol, waypoint_symbol, body["shipSymbol"], body["tradeSymbol"], body["units"]
            )

    def _setup_faction_routes(self, router: APIRouter):
        client = self.client

        @router.get("/factions")
        async def get_factions(page: Optional[str] = None, limit: Optional[str] = None):
            return await client.get_factions(_page_param(page, 1), _page_param(limit, 20))

        @router.get("/factions/{faction_symbol}")
        async def get_faction(faction_symbol: str):
            return await client.get_faction(faction_symbol)

    def _setup_status_routes(self, router: APIRouter):
        client = self.client

        @router.get("/rate-limit")
        async def rate_limit_status():
            """Last upstream quota observation."""
            info = client.get_rate_limit_status()
            return {
                "observed": info is not None,
                "limit": info.limit if info else None,
                "remaining": info.remaining if info else None,
                "reset": info.reset.isoformat() if info else None,
                "rate_limited": client.is_rate_limited(),
                "seconds_until_reset": client.seconds_until_reset(),
            }


def create_app(**config_overrides):
    """Create FastAPI application."""
    service = ProxyService(**config_overrides)
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()
