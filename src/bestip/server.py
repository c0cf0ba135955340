"""HTTP API serving the stored snapshots.

Routes mirror the plain-text and JSON endpoints that downstream tools
consume; the manual update endpoint runs the same pipeline as the timer.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from aiohttp import web

from .errors import StorageUnavailableError
from .extractor import is_valid_ipv4
from .output import (
    generate_fast_list,
    generate_formatted_list,
    generate_ip_list,
    generate_itdog_payload,
    generate_status,
)
from .pipeline import Orchestrator
from .prober import failure_to_dict
from .scheduler import UpdateScheduler

logger = logging.getLogger(__name__)

ORCHESTRATOR = web.AppKey("orchestrator", Orchestrator)
SCHEDULER = web.AppKey("scheduler", UpdateScheduler)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_dumps = functools.partial(json.dumps, indent=2)


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def text_response(text: str, filename: Optional[str] = None) -> web.Response:
    response = web.Response(text=text, content_type="text/plain", charset="utf-8")
    if filename:
        response.headers["Content-Disposition"] = f'inline; filename="{filename}"'
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPNotFound:
        response = json_response({"error": "Endpoint not found"}, 404)
    except web.HTTPMethodNotAllowed:
        response = json_response({"error": "Method not allowed"}, 405)
    except StorageUnavailableError as e:
        logger.error("Storage unavailable: %s", e)
        response = web.Response(status=500, text=str(e), content_type="text/plain")
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error("Error handling %s: %s", request.path, e, exc_info=True)
        response = json_response({"error": str(e)}, 500)
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


def _orchestrator(request: web.Request) -> Orchestrator:
    return request.app[ORCHESTRATOR]


async def handle_index(request: web.Request) -> web.Response:
    orchestrator = _orchestrator(request)
    status = generate_status(
        orchestrator.get_full_snapshot(),
        orchestrator.get_fast_snapshot(),
        orchestrator.settings.FAST_IP_COUNT,
    )
    status["running"] = orchestrator.is_running
    status["stage"] = orchestrator.current_stage.value
    return json_response(status)


async def handle_update(request: web.Request) -> web.Response:
    if request.method != "POST":
        return json_response({"error": "Method not allowed"}, 405)
    orchestrator = _orchestrator(request)
    if orchestrator.is_running:
        return json_response({"success": False, "error": "Update already in progress"}, 409)
    result = await orchestrator.perform_update()
    return json_response(result, 200 if result.get("success") else 500)


async def handle_ips(request: web.Request) -> web.Response:
    return text_response(generate_ip_list(_orchestrator(request).get_full_snapshot()))


async def handle_ips_format(request: web.Request) -> web.Response:
    return text_response(generate_formatted_list(_orchestrator(request).get_full_snapshot()))


async def handle_raw(request: web.Request) -> web.Response:
    return json_response(_orchestrator(request).get_full_snapshot())


async def handle_fast_ips(request: web.Request) -> web.Response:
    return json_response(_orchestrator(request).get_fast_snapshot())


async def handle_fast_ips_text(request: web.Request) -> web.Response:
    text = generate_fast_list(_orchestrator(request).get_fast_snapshot())
    return text_response(text, filename="fast_ips.txt")


async def handle_itdog(request: web.Request) -> web.Response:
    return json_response(generate_itdog_payload(_orchestrator(request).get_full_snapshot()))


async def handle_speedtest(request: web.Request) -> web.Response:
    ip = request.query.get("ip")
    if not ip:
        return json_response({"error": "IP required"}, 400)
    if not is_valid_ipv4(ip):
        return json_response({"error": "Invalid IP"}, 400)
    outcome = await _orchestrator(request).probe_one(ip, request.query.get("country"))
    if outcome.ok:
        return json_response({"success": True, **outcome.value.to_dict()})
    return json_response(failure_to_dict(outcome))


async def _scheduler_context(app: web.Application) -> AsyncIterator[None]:
    scheduler = app.get(SCHEDULER)
    if scheduler is not None:
        scheduler.start()
    yield
    if scheduler is not None:
        await scheduler.stop()


def create_app(
    orchestrator: Orchestrator, scheduler: Optional[UpdateScheduler] = None
) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[ORCHESTRATOR] = orchestrator
    if scheduler is not None:
        app[SCHEDULER] = scheduler
    app.cleanup_ctx.append(_scheduler_context)

    app.router.add_get("/", handle_index)
    app.router.add_route("*", "/update", handle_update)
    app.router.add_get("/ips", handle_ips)
    app.router.add_get("/ip.txt", handle_ips)
    app.router.add_get("/ips-format", handle_ips_format)
    app.router.add_get("/raw", handle_raw)
    app.router.add_get("/fast-ips", handle_fast_ips)
    app.router.add_get("/fast-ips.txt", handle_fast_ips_text)
    app.router.add_get("/speedtest", handle_speedtest)
    app.router.add_get("/itdog-data", handle_itdog)
    return app
