"""
Hotspot Admin Client
Talks to the WPSD / Pi-Star admin web service on the hotspot for last-heard
data, system actions and TGIF talkgroup linking
"""
import asyncio
import re
from typing import Any, Dict, List, Optional, Tuple
import logging

import httpx

from .config import Config

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
REACHABILITY_TIMEOUT = 5.0
SCRAPE_TIMEOUT = 10.0
RETRY_DELAY = 1.0

ALLOWED_ACTIONS = (
    'reboot',
    'shutdown',
    'get_ip',
    'update_wpsd',
    'stop_wpsd_services',
    'restart_wpsd_services',
    'update_hostfiles',
    'reload_wifi',
)

_TD_PATTERN = re.compile(r'<td[^>]*>([\s\S]*?)</td>', re.IGNORECASE)
_TAG_PATTERN = re.compile(r'<[^>]*>')
_TG_PATTERN = re.compile(r'TG\s*(\d+)', re.IGNORECASE)


class HotspotError(Exception):
    """The hotspot admin service failed or could not be reached"""


def parse_tgif_slots(html: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Pull slot 1 / slot 2 talkgroups out of tgif_links.php.

    The page renders a table whose data row holds the master followed by one
    cell per slot, each either "TG<n>" (possibly "TG 720" or "TG777 Parrot")
    or "None".
    """
    values = []
    for cell in _TD_PATTERN.findall(html):
        text = _TAG_PATTERN.sub('', cell).strip()
        if match := _TG_PATTERN.search(text):
            values.append(match.group(1))
        elif text == 'None':
            values.append(None)

    slot1 = values[0] if len(values) >= 1 else None
    slot2 = values[1] if len(values) >= 2 else None
    return slot1, slot2


def _decode_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {'raw': response.text}


class HotspotClient:
    """Async client for the hotspot admin endpoints (HTTP basic auth)"""

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self.config.wpsd_base()

    def _client(self, timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
        auth = httpx.BasicAuth(
            self.config.get('wpsd', 'username', default='pi-star'),
            self.config.get('wpsd', 'password', default='raspberry'),
        )
        return httpx.AsyncClient(base_url=self.base_url, auth=auth, timeout=timeout,
                                 transport=self._transport)

    def error_hint(self, status: int) -> str:
        return (
            f"Hotspot returned {status}. Check wpsd.host ({self.base_url}), wpsd.username "
            "and wpsd.password in config.json and that the hotspot admin is reachable."
        )

    async def _get_json(self, path: str, params: Dict[str, Any] = None,
                        timeout: float = DEFAULT_TIMEOUT) -> Any:
        try:
            async with self._client(timeout) as client:
                response = await client.get(path, params=params)
        except httpx.HTTPError as e:
            raise HotspotError(f"Could not reach hotspot at {self.base_url}: {e}") from e
        if response.is_error:
            raise HotspotError(f"HTTP {response.status_code}")
        return _decode_json(response)

    async def is_reachable(self) -> bool:
        """Probe the admin API, retrying once after a second for flaky Wi-Fi"""
        for attempt in range(2):
            try:
                async with self._client(REACHABILITY_TIMEOUT) as client:
                    response = await client.get(
                        '/admin/system_api.php', params={'action': 'get_ip', 'format': 'json'}
                    )
                return response.is_success
            except httpx.HTTPError as e:
                logger.debug(f"Hotspot check {attempt + 1} failed: {e}")
                if attempt == 0:
                    await asyncio.sleep(RETRY_DELAY)
        return False

    async def last_heard(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Hotspot's own last-heard list, normalized to carry 'ber'"""
        try:
            data = await self._get_json('/api/last_heard.php', {'num_transmissions': limit})
        except HotspotError as e:
            logger.debug(f"last_heard.php failed ({e}), trying /api/")
            data = await self._get_json('/api/', {'limit': limit})

        rows = data if isinstance(data, list) else []
        normalized = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            row = dict(row)
            if row.get('bit_error_rate') is not None and row.get('ber') is None:
                row['ber'] = row['bit_error_rate']
            normalized.append(row)
        return normalized

    async def system_action(self, action: str) -> Any:
        """Run an admin action such as reboot; only ALLOWED_ACTIONS are accepted"""
        if action not in ALLOWED_ACTIONS:
            raise ValueError(f"Invalid action: {action}")
        logger.info(f"Hotspot action: {action}")
        return await self._get_json('/admin/system_api.php', {'action': action, 'format': 'json'})

    async def _tgif_post(self, form: Dict[str, str]) -> Optional[str]:
        try:
            async with self._client(DEFAULT_TIMEOUT) as client:
                response = await client.post('/mmdvmhost/tgif_manager.php', data=form)
        except httpx.HTTPError as e:
            raise HotspotError(f"Could not reach hotspot: {e}") from e
        if response.is_error:
            raise HotspotError(self.error_hint(response.status_code))

        text = response.text
        if 'linked' in text:  # also matches "unlinked"
            return None
        return text[:200]

    async def tgif_link(self, slot: int, talkgroup: str) -> Optional[str]:
        """Link a timeslot to a TGIF talkgroup. Returns the page text when it isn't a confirmation"""
        logger.info(f"TGIF link TG {talkgroup} on slot {slot}")
        return await self._tgif_post({
            'tgifSubmit': '1',
            'tgifSlot': str(slot),
            'tgifNumber': str(talkgroup),
            'tgifAction': 'LINK',
        })

    async def tgif_unlink(self, slot: int) -> Optional[str]:
        logger.info(f"TGIF unlink slot {slot}")
        return await self._tgif_post({
            'tgifSubmit': '1',
            'tgifSlot': str(slot),
            'tgifAction': 'UNLINK',
        })

    async def tgif_slots(self) -> Tuple[Optional[str], Optional[str]]:
        """Current TGIF talkgroups per slot, (None, None) if the page can't be read"""
        try:
            async with self._client(SCRAPE_TIMEOUT) as client:
                response = await client.get('/mmdvmhost/tgif_links.php')
        except httpx.HTTPError as e:
            logger.info(f"tgif_links.php scrape failed: {e}")
            return None, None
        if response.is_error:
            logger.info(f"tgif_links.php returned {response.status_code}")
            return None, None
        return parse_tgif_slots(response.text)


class TgifTracker:
    """Last TG linked per slot through this dashboard; the hotspot can't always report it"""

    def __init__(self):
        self.last_linked: Dict[int, Optional[str]] = {1: None, 2: None}

    def linked(self, slot: int, talkgroup: str):
        self.last_linked[slot] = talkgroup

    def unlinked(self, slot: int):
        self.last_linked[slot] = None
