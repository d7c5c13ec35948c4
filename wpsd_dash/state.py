"""
Dashboard State Management
Keeps the recent voice traffic window and derives MMDVMHost service status
"""
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional
import logging

from .parsers import LineDecoder, VoiceEvent, format_timestamp

logger = logging.getLogger(__name__)

MAX_EVENTS = 500
MAX_RECENT_LIMIT = 100
ACTIVITY_TIMEOUT_SECONDS = 300

STATE_RUNNING = 'running'
STATE_STOPPED = 'stopped'
STATE_UNKNOWN = 'unknown'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventBuffer:
    """Fixed-size window of recent voice events, oldest dropped first"""

    def __init__(self, max_events: int = MAX_EVENTS):
        self.max_events = max_events
        self._events: Deque[VoiceEvent] = deque(maxlen=max_events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        # oldest first, over a copy
        return iter(list(self._events))

    def append(self, event: VoiceEvent):
        self._events.append(event)

    def recent(self, limit: int = 50) -> List[VoiceEvent]:
        """Most recent events, newest first. limit is clamped to [1, 100]"""
        limit = max(1, min(int(limit), MAX_RECENT_LIMIT))
        events = list(self._events)[-limit:]
        events.reverse()
        return events


@dataclass(frozen=True)
class ServiceStatus:
    """MMDVMHost status as seen through its log activity"""
    state: str
    last_activity: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'mmdvmHost': self.state}
        if self.last_activity is not None:
            data['lastActivity'] = format_timestamp(self.last_activity)
        if self.error_message is not None:
            data['errorMessage'] = self.error_message
        return data


class ActivityTracker:
    """
    Tracks when traffic was last decoded and derives running/stopped/unknown.

    No state is stored beyond the last activity time; status() recomputes it
    from that timestamp and whether the log directory exists right now.
    """

    def __init__(self, log_dir: Callable[[], Path],
                 timeout_seconds: float = ACTIVITY_TIMEOUT_SECONDS,
                 clock: Callable[[], datetime] = utcnow):
        self._log_dir = log_dir
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self.last_activity: Optional[datetime] = None

    def record_activity(self, when: Optional[datetime] = None):
        self.last_activity = when or self._clock()

    def status(self) -> ServiceStatus:
        state = STATE_UNKNOWN
        if self.last_activity is not None:
            age = (self._clock() - self.last_activity).total_seconds()
            state = STATE_RUNNING if age < self.timeout_seconds else STATE_STOPPED

        log_dir = self._log_dir()
        if not log_dir.exists():
            return ServiceStatus(
                state=STATE_UNKNOWN,
                last_activity=self.last_activity,
                error_message=f"Log dir not found: {log_dir}",
            )
        return ServiceStatus(state=state, last_activity=self.last_activity)


class TrafficService:
    """
    Owns the decoder, the event window and the activity tracker.

    Created once at startup and shared with the HTTP layer; the log ingestor is
    its only writer.
    """

    def __init__(self, log_dir: Callable[[], Path], max_events: int = MAX_EVENTS,
                 decoder: Optional[LineDecoder] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.decoder = decoder or LineDecoder()
        self.buffer = EventBuffer(max_events)
        self.tracker = ActivityTracker(log_dir, clock=clock)

    def ingest_line(self, line: str) -> Optional[VoiceEvent]:
        """Decode one log line; successful decodes are stored and count as activity"""
        event = self.decoder.decode(line)
        if event is None:
            return None
        self.buffer.append(event)
        self.tracker.record_activity()
        return event

    def ingest_lines(self, lines) -> int:
        """Decode a batch of lines in order, returning how many produced events"""
        count = 0
        for line in lines:
            if not line.strip():
                continue
            if self.ingest_line(line) is not None:
                count += 1
        return count

    def recent(self, limit: int = 50) -> List[VoiceEvent]:
        return self.buffer.recent(limit)

    def status(self) -> ServiceStatus:
        return self.tracker.status()
