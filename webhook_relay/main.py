# Webhook 中继主入口
# 启动时先 resync 映射表，完成后 /ready 才返回就绪；同进程提供 /health、事件入口与映射查询

import asyncio
import logging
from typing import Optional

import aiohttp.web

from webhook_relay.config import RELAY_PORT
from webhook_relay.core.events import handle_event
from webhook_relay.core.user_mapping import UserMappingRegistry
from webhook_relay.storage import get_backend

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REGISTRY_KEY = aiohttp.web.AppKey("registry", UserMappingRegistry)
READY_KEY = aiohttp.web.AppKey("ready", asyncio.Event)


async def health(_request: aiohttp.web.Request) -> aiohttp.web.Response:
    """liveness，进程存活即 200。"""
    return aiohttp.web.json_response({"status": "ok"})


async def ready(request: aiohttp.web.Request) -> aiohttp.web.Response:
    """readiness：映射表 resync 完成前返回 503。"""
    is_ready = request.app[READY_KEY].is_set()
    registry = request.app[REGISTRY_KEY]
    return aiohttp.web.json_response(
        {"ready": is_ready, "mappings": len(registry.all())},
        status=200 if is_ready else 503,
    )


async def events_handler(request: aiohttp.web.Request) -> aiohttp.web.Response:
    """POST /api/v1/events：接收会议事件，更新映射表，返回补全 external-user-id 后的事件。"""
    try:
        body = await request.json()
    except Exception as e:
        return aiohttp.web.json_response({"ok": False, "error": f"无效 JSON: {e}"}, status=400)
    if not isinstance(body, dict):
        return aiohttp.web.json_response({"ok": False, "error": "事件必须是 JSON 对象"}, status=400)
    event, applied = await handle_event(request.app[REGISTRY_KEY], body)
    return aiohttp.web.json_response({"ok": True, "applied": applied, "event": event})


async def mappings_handler(request: aiohttp.web.Request) -> aiohttp.web.Response:
    """GET /api/v1/mappings：当前内存中的全部映射，供排障。"""
    items = [m.to_redis() for m in request.app[REGISTRY_KEY].all()]
    return aiohttp.web.json_response({"items": items, "total": len(items)})


def create_app(registry: UserMappingRegistry, is_ready: bool = False) -> aiohttp.web.Application:
    app = aiohttp.web.Application()
    app[REGISTRY_KEY] = registry
    app[READY_KEY] = asyncio.Event()
    if is_ready:
        app[READY_KEY].set()
    app.router.add_get("/health", health)
    app.router.add_get("/ready", ready)
    app.router.add_post("/api/v1/events", events_handler)
    app.router.add_get("/api/v1/mappings", mappings_handler)
    return app


async def run_server(app: aiohttp.web.Application, port: int) -> aiohttp.web.AppRunner:
    runner = aiohttp.web.AppRunner(app)
    await runner.setup()
    site = aiohttp.web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    logger.info("中继已启动 http://0.0.0.0:%s/health, /ready, /api/v1/events", port)
    return runner


async def main(port: Optional[int] = None):
    """先启动 HTTP（/ready 未就绪），resync 完成后标记就绪，阻塞直到退出。"""
    store = get_backend()
    registry = UserMappingRegistry(store)
    app = create_app(registry)
    runner = await run_server(app, port or RELAY_PORT)
    try:
        count = await registry.initialize()
        app[READY_KEY].set()
        logger.info("映射表已就绪，共恢复 %s 条", count)
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        pass
    finally:
        await runner.cleanup()
        await store.close()


if __name__ == "__main__":
    asyncio.run(main())
