"""
Host System Statistics
CPU, temperature, disk, memory and uptime for the dashboard status widgets
"""
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict
import logging

import psutil

from .parsers import format_timestamp

logger = logging.getLogger(__name__)

# Raspberry Pi SoC temperature in millidegrees Celsius
THERMAL_ZONE = Path('/sys/class/thermal/thermal_zone0/temp')


def get_cpu_temp(path: Path = THERMAL_ZONE) -> int:
    try:
        millideg = int(path.read_text().strip())
    except (OSError, ValueError):
        return 0
    return round(millideg / 1000)


def get_disk_used_percent(mount: str = '/') -> int:
    try:
        return round(psutil.disk_usage(mount).percent)
    except OSError as e:
        logger.debug(f"Disk usage unavailable for {mount}: {e}")
        return 0


def get_system_stats() -> Dict[str, Any]:
    return {
        'cpuLoad': round(psutil.cpu_percent(interval=None)),
        'cpuTemp': get_cpu_temp(),
        'diskUsedPercent': get_disk_used_percent(),
        'memoryUsedPercent': round(psutil.virtual_memory().percent),
        'uptimeSeconds': int(time.time() - psutil.boot_time()),
        'timestamp': format_timestamp(datetime.now(timezone.utc)),
    }
