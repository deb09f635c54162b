"""
Last-used printer port, remembered between sessions.

The entry records the USB identity the port had when it was opened, so a
device path that has since been handed to another USB-serial adapter is
not reused.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from .connection import PortInfo

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60

CONFIG_DIR = Path.home() / ".config" / "niimbot"
CACHE_FILE = CONFIG_DIR / "last_port.json"


@dataclass
class CachedPort:
    """A serial port that last held a printer."""

    device: str
    vid: Optional[int]
    pid: Optional[int]
    last_used: float  # Unix timestamp

    def age(self) -> float:
        return time.time() - self.last_used

    def matches(self, port: PortInfo) -> bool:
        """True if the listed port still carries the cached USB identity."""
        return (port.device, port.vid, port.pid) == (self.device, self.vid, self.pid)


def load_cached_port(ttl_seconds: int = DEFAULT_TTL_SECONDS) -> Optional[CachedPort]:
    """
    Read the cache entry.

    Returns:
        The entry, or None if it is missing, unreadable or older than
        ttl_seconds
    """
    try:
        entry = CachedPort(**json.loads(CACHE_FILE.read_text()))
    except FileNotFoundError:
        return None
    except (ValueError, TypeError) as e:
        logger.debug("Ignoring unreadable port cache %s: %s", CACHE_FILE, e)
        return None

    if entry.age() > ttl_seconds:
        logger.debug("Port cache for %s expired", entry.device)
        return None
    return entry


def save_port(port: PortInfo) -> CachedPort:
    """Remember port as the last one a printer was opened on."""
    entry = CachedPort(device=port.device, vid=port.vid, pid=port.pid, last_used=time.time())
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    CACHE_FILE.write_text(json.dumps(asdict(entry), indent=2))
    return entry


def clear_cache() -> bool:
    """Remove the cache entry. Returns False if there was none."""
    try:
        CACHE_FILE.unlink()
    except FileNotFoundError:
        return False
    return True
