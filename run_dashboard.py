"""
WPSD Dashboard - Main Entry Point
FastAPI server for MMDVM hotspot live traffic via log file parsing
"""
import asyncio
import logging
import os

from wpsd_dash.config import config
from wpsd_dash.hotspot_client import HotspotClient
from wpsd_dash.monitor import LogTailIngestor
from wpsd_dash.server import create_app
from wpsd_dash.state import TrafficService

logging.basicConfig(
    level=os.environ.get('WPSD_DASH_LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def check_hotspot(hotspot: HotspotClient):
    """Log whether the hotspot admin API answers at startup"""
    if await hotspot.is_reachable():
        logger.info(f"WPSD reachable at {hotspot.base_url}")
    else:
        logger.warning(f"WPSD not reachable at {hotspot.base_url}")
        logger.warning("Use Settings in the UI to update the IP when on mobile hotspot.")


async def serve(server, ingestor: LogTailIngestor, hotspot: HotspotClient):
    """Run the HTTP server with the log ingestor and hotspot check alongside it"""
    ingest_task = asyncio.create_task(ingestor.run())
    hotspot_task = asyncio.create_task(check_hotspot(hotspot))
    try:
        await server.serve()
    finally:
        ingestor.stop()
        ingest_task.cancel()
        hotspot_task.cancel()


def main():
    import uvicorn

    logger.info("Starting WPSD Dashboard...")
    logger.info(f"Log dir: {config.get_log_dir()}")

    traffic = TrafficService(
        config.get_log_dir,
        max_events=config.get('monitoring', 'max_events', default=500),
    )
    ingestor = LogTailIngestor(
        traffic,
        config.get_log_dir,
        poll_interval=config.get('monitoring', 'poll_interval', default=0.5),
    )
    hotspot = HotspotClient(config)
    app = create_app(config, traffic, hotspot)

    host = config.get('dashboard', 'host', default='0.0.0.0')
    port = config.get('dashboard', 'port', default=3456)
    uvicorn_config = uvicorn.Config(app, host=host, port=port, log_level="info")
    server = uvicorn.Server(uvicorn_config)

    logger.info(f"Listening on http://{host}:{port}")
    asyncio.run(serve(server, ingestor, hotspot))


if __name__ == "__main__":
    main()
