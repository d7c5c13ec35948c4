"""
Log File Monitor
Watches the MMDVMHost log directory and feeds new lines to the traffic service
"""
import asyncio
import aiofiles
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Tuple
import logging
import re

from .state import TrafficService

logger = logging.getLogger(__name__)

LOG_FILE_ROOT = 'MMDVM'
LOG_FILE_GLOB = f'{LOG_FILE_ROOT}-*.log'
DATE_PATTERN = re.compile(r'(\d{4}-\d{2}-\d{2})')

CREATED = 'created'
CHANGED = 'changed'


@dataclass(frozen=True)
class FileChange:
    """A log file appeared or grew"""
    kind: str
    path: Path


def log_file_for(log_dir: Path, day: datetime) -> Path:
    """Daily MMDVMHost log name, e.g. MMDVM-2025-11-05.log"""
    return log_dir / f"{LOG_FILE_ROOT}-{day.strftime('%Y-%m-%d')}.log"


class LogDirectoryWatcher:
    """
    Polls a directory for files matching a glob and reports changes.

    The first scan reports every existing file as created, later scans report
    new files as created and files whose size or mtime moved as changed.
    """

    def __init__(self, directory: Path, pattern: str = LOG_FILE_GLOB, poll_interval: float = 0.5):
        self.directory = Path(directory)
        self.pattern = pattern
        self.poll_interval = poll_interval
        self.running = False
        self._seen: Dict[Path, Tuple[int, int]] = {}

    def _snapshot(self) -> Dict[Path, Tuple[int, int]]:
        snapshot = {}
        if not self.directory.is_dir():
            return snapshot
        for path in self.directory.glob(self.pattern):
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue  # removed between glob and stat
            snapshot[path] = (stat.st_size, stat.st_mtime_ns)
        return snapshot

    def scan(self) -> List[FileChange]:
        """Compare the directory against the previous scan"""
        current = self._snapshot()
        changes = []
        for path in sorted(current):
            previous = self._seen.get(path)
            if previous is None:
                changes.append(FileChange(CREATED, path))
            elif previous != current[path]:
                changes.append(FileChange(CHANGED, path))
        self._seen = current
        return changes

    async def changes(self) -> AsyncIterator[FileChange]:
        """Yield changes until stop() is called"""
        self.running = True
        while self.running:
            for change in self.scan():
                yield change
                if not self.running:
                    return
            await asyncio.sleep(self.poll_interval)

    def stop(self):
        self.running = False


class LogTailIngestor:
    """
    Reads today's MMDVMHost log into the traffic service, then follows it.

    A read offset is kept per file so a change notification only decodes the
    bytes appended since the previous read.
    """

    def __init__(self, traffic: TrafficService, log_dir: Callable[[], Path],
                 poll_interval: float = 0.5,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self.traffic = traffic
        self._log_dir = log_dir
        self.poll_interval = poll_interval
        self._clock = clock
        self.offsets: Dict[Path, int] = {}
        self.watcher: Optional[LogDirectoryWatcher] = None
        self.log_dir_missing = False

    @property
    def log_dir(self) -> Path:
        return self._log_dir()

    def today_log_path(self) -> Path:
        # MMDVMHost rolls its log at UTC midnight
        return log_file_for(self.log_dir, self._clock())

    async def start(self) -> bool:
        """Initial read of today's log. Returns False when the log directory is missing"""
        log_dir = self.log_dir
        if not log_dir.is_dir():
            self.log_dir_missing = True
            logger.warning(f"Log dir does not exist: {log_dir}")
            logger.warning(
                "Live traffic from logs will be empty. Set paths.logDir in config.json "
                f"(or MMDVM_LOG_DIR) to a directory with {LOG_FILE_GLOB} files."
            )
            return False

        self.log_dir_missing = False
        today = self.today_log_path()
        if today.exists():
            count = await self.read_new_lines(today)
            logger.info(f"Initial read of {today.name}: {count} voice events")
        else:
            logger.info(f"No log for today yet: {today}")
        return True

    async def run(self):
        """Initial read, then handle watcher notifications one at a time"""
        if not await self.start():
            return

        self.watcher = LogDirectoryWatcher(self.log_dir, LOG_FILE_GLOB, self.poll_interval)
        logger.info(f"Watching {self.log_dir}/{LOG_FILE_GLOB} for live traffic")
        async for change in self.watcher.changes():
            await self.handle_change(change)

    def stop(self):
        if self.watcher:
            self.watcher.stop()
        logger.info("Stopped log ingestor")

    def _is_older_than_today(self, path: Path) -> bool:
        match = DATE_PATTERN.search(path.name)
        if not match:
            return False
        return match.group(1) < self._clock().strftime('%Y-%m-%d')

    async def handle_change(self, change: FileChange) -> int:
        """Decode whatever was appended to the notified file"""
        if self._is_older_than_today(change.path):
            logger.debug(f"Ignoring {change.kind} for previous day's log {change.path.name}")
            return 0
        return await self.read_new_lines(change.path)

    async def read_new_lines(self, path: Path) -> int:
        """
        Read from the stored offset to the last complete line.

        A trailing line without a newline is still being written; it stays
        unread until the next notification. Read errors are logged and the
        offset is left alone so the next notification retries.
        """
        offset = self.offsets.get(path, 0)
        try:
            size = path.stat().st_size
            if size < offset:
                logger.info(f"Log file {path.name} shrank, re-reading from start")
                offset = 0
                self.offsets[path] = 0
            if size == offset:
                return 0

            async with aiofiles.open(path, 'rb') as f:
                await f.seek(offset)
                data = await f.read()
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return 0

        end = data.rfind(b'\n')
        if end == -1:
            return 0  # no complete line yet
        complete = data[:end + 1]
        self.offsets[path] = offset + len(complete)

        lines = complete.decode('utf-8', errors='ignore').splitlines()
        count = self.traffic.ingest_lines(lines)
        logger.debug(f"Read {len(lines)} lines from {path.name}, {count} voice events")
        return count
