"""
FastAPI Server for WPSD Dashboard
REST API for live traffic, service status, MMDVM config and hotspot admin
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import psutil
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Config
from .hotspot_client import ALLOWED_ACTIONS, HotspotClient, HotspotError, TgifTracker
from .mmdvm_ini import MMDVMConfigError, merge_mmdvm_config, read_mmdvm_config, write_mmdvm_config
from .parsers import format_timestamp
from .state import MAX_RECENT_LIMIT, TrafficService
from .system_stats import get_system_stats

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
DEFAULT_TGIF_TG = '777'
MAX_TGIF_TG = 99999999
WPSD_HOST_MAX_LENGTH = 2048

router = APIRouter(prefix="/api")


# Dependencies - services live on app.state, created once in create_app()
def get_config(request: Request) -> Config:
    return request.app.state.config


def get_traffic(request: Request) -> TrafficService:
    return request.app.state.traffic


def get_hotspot(request: Request) -> HotspotClient:
    return request.app.state.hotspot


def get_tgif(request: Request) -> TgifTracker:
    return request.app.state.tgif


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def parse_limit(value: Optional[str], default: int = DEFAULT_LIMIT) -> int:
    """Query limit as an int in [1, 100]; unparsable or zero means default"""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = 0
    if not limit:
        limit = default
    return max(1, min(MAX_RECENT_LIMIT, limit))


def parse_timeslot(value: Any) -> int:
    """TGIF timeslot 1 or 2, defaulting to 2"""
    try:
        slot = int(str(value))
    except ValueError:
        slot = 0
    if not slot:
        slot = 2
    return max(1, min(2, slot))


def parse_talkgroup(value: Any) -> str:
    try:
        tg = int(str(value))
    except ValueError:
        return DEFAULT_TGIF_TG
    if 1 <= tg <= MAX_TGIF_TG:
        return str(tg)
    return DEFAULT_TGIF_TG


async def json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# Live traffic and status
@router.get("/live-traffic")
async def live_traffic(limit: Optional[str] = None, traffic: TrafficService = Depends(get_traffic)):
    """Recent voice transmissions parsed from the MMDVMHost log, newest first"""
    return [event.to_dict() for event in traffic.recent(parse_limit(limit))]


@router.get("/system")
async def system_stats():
    try:
        return get_system_stats()
    except (OSError, psutil.Error) as e:
        return error_response(500, str(e))


@router.get("/system/service")
async def service_status(traffic: TrafficService = Depends(get_traffic)):
    """MMDVMHost running/stopped/unknown, derived from log activity"""
    return traffic.status().to_dict()


@router.get("/health")
async def health():
    return {"ok": True, "timestamp": format_timestamp(datetime.now(timezone.utc))}


# MMDVMHost INI
@router.get("/mmdvm-config")
async def get_mmdvm_config(config: Config = Depends(get_config)):
    try:
        return read_mmdvm_config(config.get_mmdvm_ini())
    except MMDVMConfigError as e:
        return error_response(500, str(e))


@router.put("/mmdvm-config")
async def put_mmdvm_config(request: Request, config: Config = Depends(get_config)):
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return error_response(400, "Invalid request body")

    ini_path = config.get_mmdvm_ini()
    try:
        merged = merge_mmdvm_config(read_mmdvm_config(ini_path), body)
        write_mmdvm_config(ini_path, merged)
    except MMDVMConfigError as e:
        return error_response(500, str(e))
    return {"ok": True}


# TGIF talkgroup linking through the hotspot
@router.get("/tgif/info")
async def tgif_info(config: Config = Depends(get_config)):
    base = config.wpsd_base()
    return {
        "dmrId": config.get('tgif', 'dmrId', default='3221205'),
        "wpsdProxyUrl": f"{base}/mmdvmhost/tgif_manager.php",
        "statusUrl": f"{base}/mmdvmhost/tgif_links.php",
    }


@router.get("/tgif/status")
async def tgif_status(config: Config = Depends(get_config),
                      hotspot: HotspotClient = Depends(get_hotspot),
                      tgif: TgifTracker = Depends(get_tgif)):
    slot1, slot2 = await hotspot.tgif_slots()
    return {
        "dmrId": config.get('tgif', 'dmrId', default='3221205'),
        "connected": True,
        "slot1": slot1,
        "slot2": slot2,
        "lastLinkedSlot1": tgif.last_linked[1],
        "lastLinkedSlot2": tgif.last_linked[2],
    }


@router.post("/tgif/link")
async def tgif_link(request: Request,
                    hotspot: HotspotClient = Depends(get_hotspot),
                    tgif: TgifTracker = Depends(get_tgif)):
    body = await json_body(request)
    slot = parse_timeslot(body.get('timeslot', 2))
    talkgroup = parse_talkgroup(body.get('tg'))
    try:
        await hotspot.tgif_link(slot, talkgroup)
    except HotspotError as e:
        return error_response(500, str(e))
    tgif.linked(slot, talkgroup)
    return {"ok": True, "tg": talkgroup, "slot": slot}


@router.post("/tgif/unlink")
async def tgif_unlink(request: Request,
                      hotspot: HotspotClient = Depends(get_hotspot),
                      tgif: TgifTracker = Depends(get_tgif)):
    body = await json_body(request)
    slot = parse_timeslot(body.get('timeslot', 2))
    try:
        await hotspot.tgif_unlink(slot)
    except HotspotError as e:
        return error_response(500, str(e))
    tgif.unlinked(slot)
    return {"ok": True, "slot": slot}


# Hotspot admin proxy
@router.get("/wpsd/last-heard")
async def wpsd_last_heard(limit: Optional[str] = None, hotspot: HotspotClient = Depends(get_hotspot)):
    try:
        return await hotspot.last_heard(parse_limit(limit))
    except HotspotError as e:
        return error_response(500, str(e))


@router.post("/wpsd/action")
async def wpsd_action(request: Request, hotspot: HotspotClient = Depends(get_hotspot)):
    body = await json_body(request)
    action = body.get('action')
    if action not in ALLOWED_ACTIONS:
        return error_response(400, "Invalid action")
    try:
        return await hotspot.system_action(action)
    except HotspotError as e:
        return error_response(500, str(e))


# Dashboard settings
@router.get("/config")
async def get_dashboard_config(config: Config = Depends(get_config),
                               hotspot: HotspotClient = Depends(get_hotspot)):
    return {"wpsdHost": config.wpsd_base(), "reachable": await hotspot.is_reachable()}


@router.put("/config")
async def put_dashboard_config(request: Request, config: Config = Depends(get_config)):
    body = await json_body(request)
    host = body.get('wpsdHost')
    if not host or not isinstance(host, str):
        return error_response(400, "wpsdHost required")

    host = host.strip().rstrip('/')
    if not host.startswith(('http://', 'https://')):
        return error_response(400, "wpsdHost must start with http:// or https://")
    if len(host) > WPSD_HOST_MAX_LENGTH:
        return error_response(400, f"wpsdHost must be at most {WPSD_HOST_MAX_LENGTH} characters")

    try:
        config.update_wpsd_host(host)
    except OSError as e:
        return error_response(500, str(e))
    logger.info(f"Hotspot host changed to {host}")
    return {"ok": True, "wpsdHost": host}


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Not found" if exc.status_code == 404 else str(exc.detail)
    return error_response(exc.status_code, message)


def create_app(config: Config, traffic: TrafficService,
               hotspot: Optional[HotspotClient] = None,
               tgif: Optional[TgifTracker] = None) -> FastAPI:
    """Build the API around already-created services"""
    app = FastAPI(
        title="WPSD Dashboard",
        description="Live traffic and control panel for an MMDVM hotspot",
        version="0.1.0"
    )

    app.state.config = config
    app.state.traffic = traffic
    app.state.hotspot = hotspot or HotspotClient(config)
    app.state.tgif = tgif or TgifTracker()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.include_router(router)

    # Serve the built frontend when it is shipped alongside the package
    static_path = Path(__file__).parent / 'static'
    if static_path.exists():
        app.mount("/", StaticFiles(directory=str(static_path), html=True), name="static")

    return app
