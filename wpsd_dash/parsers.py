"""
Log Parsers for MMDVMHost Voice Traffic
Turns MMDVMHost log lines into normalized VoiceEvent records

Patterns are centralized in log_patterns.py for easier maintenance
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import logging

from wpsd_dash.log_patterns import ENVELOPE, P25_TAG, YSF_TAG, get_patterns

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S.%f'


class Mode(str, Enum):
    """Digital voice modes shown in live traffic"""
    DMR = 'DMR'
    DSTAR = 'D-Star'
    YSF = 'YSF'
    P25 = 'P25'
    NXDN = 'NXDN'  # no log matcher, only seen in the hotspot's last-heard feed


class Origin(str, Enum):
    RF = 'RF'
    NETWORK = 'Network'

    @classmethod
    def from_log(cls, value: Optional[str]) -> 'Origin':
        """Map the log's "RF"/"network" word; anything but RF is Network"""
        if value and value.upper() == 'RF':
            return cls.RF
        return cls.NETWORK


@dataclass(frozen=True)
class RssiRange:
    """RSSI summary over three samples, in dBm"""
    min: int
    avg: int
    max: int

    def to_dict(self) -> Dict[str, int]:
        return {'min': self.min, 'avg': self.avg, 'max': self.max}


Rssi = Union[int, RssiRange]


@dataclass(frozen=True)
class VoiceEvent:
    """One normalized voice transmission event parsed from a log line"""
    timestamp: datetime
    mode: Mode
    origin: Origin
    callsign: str = ''
    target: str = ''
    src: Optional[int] = None
    target_id: Optional[int] = None
    timeslot: Optional[int] = None
    duration: Optional[float] = None
    ber: Optional[float] = None
    loss: Optional[int] = None
    rssi: Optional[Rssi] = None
    raw: str = ''

    def __post_init__(self):
        if self.timeslot is not None and self.timeslot not in (1, 2):
            raise ValueError(f"timeslot must be 1 or 2, got {self.timeslot}")
        if self.ber is not None and self.origin is not Origin.RF:
            raise ValueError("ber is only reported for RF transmissions")
        if self.loss is not None and self.origin is not Origin.NETWORK:
            raise ValueError("packet loss is only reported for network transmissions")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the live-traffic JSON field names, omitting absent fields"""
        data: Dict[str, Any] = {
            'timestamp': format_timestamp(self.timestamp),
            'mode': self.mode.value,
            'callsign': self.callsign,
            'target': self.target,
            'origin': self.origin.value,
        }
        optional = {
            'src': self.src,
            'targetId': self.target_id,
            'timeslot': self.timeslot,
            'duration': self.duration,
            'ber': self.ber,
            'loss': self.loss,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if isinstance(self.rssi, RssiRange):
            data['rssi'] = self.rssi.to_dict()
        elif self.rssi is not None:
            data['rssi'] = self.rssi
        data['raw'] = self.raw
        return data


def format_timestamp(timestamp: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T12:00:00.000Z"""
    utc = timestamp.astimezone(timezone.utc)
    return utc.strftime('%Y-%m-%dT%H:%M:%S.') + f"{utc.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an MMDVMHost log timestamp; MMDVMHost always logs in UTC"""
    normalized = ' '.join(value.split())
    return datetime.strptime(normalized, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _split_source(value: Optional[str]) -> Tuple[str, Optional[int]]:
    """Return (callsign, src) for a source that is either a radio ID or a callsign.

    A numeric source keeps its text as the callsign so the UI always has
    something to show; non-numeric text is only a callsign.
    """
    if not value:
        return '', None
    return value, _to_int(value)


def _timeslot(value: str) -> int:
    return 1 if value == '1' else 2


def summarize_rssi(samples: List[Optional[str]]) -> Optional[Rssi]:
    """Reduce RSSI samples to min/avg/max when three are present, else the first sample"""
    values = [int(sample) for sample in samples if sample]
    if not values:
        return None
    if len(values) >= 3:
        avg = int(round(sum(values) / len(values)))
        return RssiRange(min=min(values), avg=avg, max=max(values))
    return values[0]


# =============================================================================
# PROTOCOL MATCHERS
# =============================================================================
# Each matcher takes the message part of a log line and returns a VoiceEvent
# or None. The timestamp and raw line are passed through untouched.

_DMR = get_patterns('dmr')
_DSTAR = get_patterns('dstar')
_YSF = get_patterns('ysf')
_P25 = get_patterns('p25')


def parse_dmr(message: str, timestamp: datetime, raw: str = '') -> Optional[VoiceEvent]:
    """Parse DMR lines: voice header, network/RF end of transmission"""
    if match := _DMR['voice_header'].search(message):
        slot, origin, source, talkgroup = match.groups()
        callsign, src = _split_source(source)
        return VoiceEvent(
            timestamp=timestamp,
            mode=Mode.DMR,
            origin=Origin.from_log(origin),
            callsign=callsign,
            src=src,
            target=f'TG {talkgroup}',
            target_id=int(talkgroup),
            timeslot=_timeslot(slot),
            raw=raw,
        )

    if match := _DMR['network_end'].search(message):
        slot, duration, loss, _ber = match.groups()
        # Network frames report a BER too, but BER is an RF-only metric here
        return VoiceEvent(
            timestamp=timestamp,
            mode=Mode.DMR,
            origin=Origin.NETWORK,
            duration=_to_float(duration),
            loss=int(loss),
            timeslot=_timeslot(slot),
            raw=raw,
        )

    if match := _DMR['rf_end'].search(message):
        slot, callsign, target, duration, ber, *rssi = match.groups()
        return VoiceEvent(
            timestamp=timestamp,
            mode=Mode.DMR,
            origin=Origin.RF,
            callsign=callsign,
            target=target,
            target_id=int(target),
            timeslot=_timeslot(slot),
            duration=_to_float(duration),
            ber=_to_float(ber),
            rssi=summarize_rssi(rssi),
            raw=raw,
        )

    if match := _DMR['network_end_source'].search(message):
        slot, source, talkgroup, duration = match.groups()
        callsign, src = _split_source(source)
        return VoiceEvent(
            timestamp=timestamp,
            mode=Mode.DMR,
            origin=Origin.NETWORK,
            callsign=callsign,
            src=src,
            target=f'TG {talkgroup}',
            target_id=int(talkgroup),
            timeslot=_timeslot(slot),
            duration=_to_float(duration),
            raw=raw,
        )

    return None


def parse_dstar(message: str, timestamp: datetime, raw: str = '') -> Optional[VoiceEvent]:
    """Parse D-Star lines: voice transmission from a callsign, or a reflector target"""
    if match := _DSTAR['transmission'].search(message):
        origin, callsign = match.groups()
        return VoiceEvent(
            timestamp=timestamp,
            mode=Mode.DSTAR,
            origin=Origin.from_log(origin),
            callsign=callsign,
            raw=raw,
        )

    if match := _DSTAR['reflector'].search(message):
        return VoiceEvent(
            timestamp=timestamp,
            mode=Mode.DSTAR,
            origin=Origin.NETWORK,
            target=match.group(1),
            raw=raw,
        )

    return None


def _parse_tagged(mode: Mode, patterns: dict, message: str,
                  timestamp: datetime, raw: str) -> Optional[VoiceEvent]:
    """Shared header/end matching for the YSF and P25 families"""
    if match := patterns['header'].search(message):
        origin, source, target = match.groups()
        callsign, src = _split_source(source)
        return VoiceEvent(
            timestamp=timestamp,
            mode=mode,
            origin=Origin.from_log(origin),
            callsign=callsign,
            src=src,
            target=target or '',
            target_id=_to_int(target),
            raw=raw,
        )

    if match := patterns['end'].search(message):
        origin, source, target, duration = match.groups()
        callsign, src = _split_source(source)
        return VoiceEvent(
            timestamp=timestamp,
            mode=mode,
            origin=Origin.from_log(origin),
            callsign=callsign,
            src=src,
            target=target or '',
            target_id=_to_int(target),
            duration=_to_float(duration),
            raw=raw,
        )

    return None


def parse_ysf(message: str, timestamp: datetime, raw: str = '') -> Optional[VoiceEvent]:
    """Parse System Fusion lines"""
    if YSF_TAG not in message:
        return None
    return _parse_tagged(Mode.YSF, _YSF, message, timestamp, raw)


def parse_p25(message: str, timestamp: datetime, raw: str = '') -> Optional[VoiceEvent]:
    """Parse P25 Phase 1 lines"""
    if P25_TAG not in message:
        return None
    return _parse_tagged(Mode.P25, _P25, message, timestamp, raw)


Matcher = Callable[[str, datetime, str], Optional[VoiceEvent]]


class LineDecoder:
    """Strips the log envelope and hands the message to the mode matchers"""

    # Priority order: several patterns overlap on ambiguous lines
    MATCHERS: Tuple[Matcher, ...] = (parse_dmr, parse_dstar, parse_ysf, parse_p25)

    def __init__(self, matchers: Optional[Tuple[Matcher, ...]] = None):
        self.matchers = matchers or self.MATCHERS

    def decode(self, line: str) -> Optional[VoiceEvent]:
        """Decode one raw log line, or None if it is not voice traffic"""
        line = line.rstrip('\r\n')
        match = ENVELOPE.match(line)
        if not match:
            return None

        timestamp_str, message = match.groups()
        try:
            timestamp = parse_timestamp(timestamp_str)
        except ValueError:
            # e.g. "2024-02-30": shaped like a timestamp but not a real date
            return None

        for matcher in self.matchers:
            event = matcher(message, timestamp, line)
            if event is not None:
                return event
        return None
