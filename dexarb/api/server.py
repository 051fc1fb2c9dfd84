"""aiohttp HTTP and websocket front for ArbitrageService."""

import asyncio
import json
from typing import Optional

from aiohttp import web, WSMsgType
from loguru import logger
from pydantic import ValidationError

from .service import ArbitrageService
from dexarb.core.errors import NoOpportunity, RiskLimitHalted, SigningKeyMissing
from dexarb.core.events import EventBus

ACTOR_HEADER = "X-Actor-Id"
SERVICE_KEY = web.AppKey("service", ArbitrageService)
EVENTS_KEY = web.AppKey("events", EventBus)


def _actor(request: web.Request) -> str:
    actor_id = request.headers.get(ACTOR_HEADER)
    if not actor_id:
        raise web.HTTPUnauthorized(text=json.dumps({'error': f"Missing {ACTOR_HEADER} header"}),
                                   content_type="application/json")
    return actor_id


def _bad_request(message: str) -> web.Response:
    return web.json_response({'success': False, 'error': message}, status=400)


def _float_param(request: web.Request, name: str) -> Optional[float]:
    value = request.query.get(name)
    return float(value) if value not in (None, "") else None


async def list_opportunities(request: web.Request) -> web.Response:
    try:
        limit = _float_param(request, 'limit')
        offset = _float_param(request, 'offset')
        opportunities = request.app[SERVICE_KEY].list_opportunities(
            min_profit=_float_param(request, 'minProfit'),
            active_only=request.query.get('activeOnly', 'false').lower() in ('1', 'true', 'yes'),
            limit=int(limit) if limit is not None else None,
            offset=int(offset) if offset is not None else 0
        )
    except ValueError as e:
        return _bad_request(f"Invalid query parameter: {e}")
    return web.json_response(opportunities)


async def execute_trade(request: web.Request) -> web.Response:
    actor_id = _actor(request)
    try:
        body = await request.json()
        opportunity_id = int(body['opportunityId'])
    except (ValueError, KeyError, TypeError):
        return _bad_request("Body must be JSON with an integer opportunityId")

    try:
        result = await request.app[SERVICE_KEY].execute_trade(
            actor_id, opportunity_id, bool(body.get('useFlashloan', True))
        )
    except SigningKeyMissing:
        return _bad_request("No signing key configured for this account")
    except NoOpportunity:
        return _bad_request("No opportunity currently available")
    return web.json_response(result.to_dict())


async def start_auto_trading(request: web.Request) -> web.Response:
    actor_id = _actor(request)
    try:
        body = await request.json() if request.can_read_body else {}
    except ValueError:
        return _bad_request("Body must be JSON")

    try:
        snapshot = await request.app[SERVICE_KEY].start_auto_trading(
            actor_id, body.get('settings'), restart=bool(body.get('restart', False))
        )
    except SigningKeyMissing:
        return _bad_request("No signing key configured for this account")
    except RiskLimitHalted as e:
        return _bad_request(str(e))
    except ValidationError as e:
        return _bad_request(f"Invalid settings: {e.errors()}")
    return web.json_response(snapshot)


async def stop_auto_trading(request: web.Request) -> web.Response:
    return web.json_response(request.app[SERVICE_KEY].stop_auto_trading(_actor(request)))


async def auto_trading_status(request: web.Request) -> web.Response:
    return web.json_response(request.app[SERVICE_KEY].auto_trading_status(_actor(request)))


async def get_stats(request: web.Request) -> web.Response:
    return web.json_response(await request.app[SERVICE_KEY].get_stats())


async def events_socket(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse(heartbeat=30)
    await ws.prepare(request)

    events = request.app[EVENTS_KEY]
    queue = events.subscribe()

    async def forward():
        while True:
            event = await queue.get()
            await ws.send_json(event)

    sender = asyncio.create_task(forward())
    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning(f"Event socket closed with error: {ws.exception()}")
    finally:
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Event sender stopped with error: {e}")
        events.unsubscribe(queue)
    return ws


def create_app(service: ArbitrageService, events: EventBus) -> web.Application:
    """Build the aiohttp application."""
    app = web.Application()
    app[SERVICE_KEY] = service
    app[EVENTS_KEY] = events
    app.router.add_get("/api/opportunities", list_opportunities)
    app.router.add_post("/api/trades/execute", execute_trade)
    app.router.add_post("/api/auto-trading/start", start_auto_trading)
    app.router.add_post("/api/auto-trading/stop", stop_auto_trading)
    app.router.add_get("/api/auto-trading/status", auto_trading_status)
    app.router.add_get("/api/stats", get_stats)
    app.router.add_get("/ws/events", events_socket)
    return app


class ApiServer:
    """Runs the application on a TCP site."""

    def __init__(self, app: web.Application, host: str, port: int):
        self.app = app
        self.host = host
        self.port = port
        self._runner: Optional[web.AppRunner] = None

    async def start(self):
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"🌐 API listening on http://{self.host}:{self.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
