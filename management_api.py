"""HTTP management API: bridge state and device selection."""

import logging

from aiohttp import web

from bridge_manager import BridgeManager
from errors import DeviceNotFound, HomeyError, SynthesisFailure

logger = logging.getLogger(__name__)

MANAGER_KEY = web.AppKey("manager", BridgeManager)


async def get_state(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]
    return web.json_response(manager.get_state().to_dict())


async def get_devices(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]
    try:
        devices = await manager.get_devices()
    except HomeyError as e:
        logger.error(f"Failed to list devices: {e}")
        return web.json_response({"error": str(e)}, status=502)
    return web.json_response([device.to_dict() for device in devices])


async def enable_device(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]
    device_id = request.match_info["device_id"]
    try:
        await manager.enable_device(device_id)
    except DeviceNotFound as e:
        return web.json_response({"error": str(e)}, status=404)
    except SynthesisFailure as e:
        return web.json_response({"error": str(e)}, status=422)
    return web.json_response({"id": device_id, "isSelected": device_id in manager.enabled})


async def disable_device(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]
    device_id = request.match_info["device_id"]
    try:
        await manager.disable_device(device_id)
    except DeviceNotFound as e:
        return web.json_response({"error": str(e)}, status=404)
    return web.json_response({"id": device_id, "isSelected": device_id in manager.enabled})


def create_app(manager: BridgeManager) -> web.Application:
    app = web.Application()
    app[MANAGER_KEY] = manager
    app.router.add_get("/state", get_state)
    app.router.add_get("/devices", get_devices)
    app.router.add_post("/devices/{device_id}/enable", enable_device)
    app.router.add_post("/devices/{device_id}/disable", disable_device)
    return app
