"""
Device Registry

The single owner of resolved Device records. Entries are keyed by
descriptor location (or by UDN when configured) and replaced wholesale on
every upsert: last completed resolution wins.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Union

from .types import NOT_FOUND, Device, _NotFound

logger = logging.getLogger(__name__)

IDENTITY_LOCATION = "location"
IDENTITY_UDN = "udn"
VALID_IDENTITIES = {IDENTITY_LOCATION, IDENTITY_UDN}

# Default entry lifetime in seconds (0 disables eviction)
DEFAULT_TTL = 1800.0


@dataclass
class _Entry:
    device: Device
    sequence: int  # insertion order, kept across replacements
    last_seen: float


class DeviceRegistry:
    """
    De-duplicated store of resolved devices.

    All mutation happens on the event loop thread, and each upsert touches a
    single key, so concurrent resolutions never interleave inside an update.

    Eviction is explicit: entries not refreshed within ``ttl`` seconds are
    dropped by evict_stale(). The registry never expires entries on its own.
    """

    def __init__(
        self,
        identity: str = IDENTITY_LOCATION,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if identity not in VALID_IDENTITIES:
            raise ValueError(f"Invalid registry identity: {identity}")
        self.identity = identity
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._sequence = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def key_for(self, location: str, device: Device) -> str:
        """Registry key for a device resolved from location."""
        if self.identity == IDENTITY_UDN and device.udn:
            return device.udn
        return location

    def upsert(self, location: str, device: Device) -> bool:
        """
        Insert or replace the record for location.

        Returns:
            True if this created a new entry
        """
        key = self.key_for(location, device)
        now = self._clock()
        existing = self._entries.get(key)

        if existing is not None:
            existing.device = device
            existing.last_seen = now
            logger.debug(f"Updated device {device.friendly_name!r} at {key}")
            return False

        self._sequence += 1
        self._entries[key] = _Entry(device=device, sequence=self._sequence, last_seen=now)
        logger.info(f"Registered device {device.friendly_name!r} ({device.udn or 'no UDN'}) at {location}")
        return True

    def get(self, key: str) -> Union[Device, _NotFound]:
        """Look up a device by its registry key."""
        entry = self._entries.get(key)
        return entry.device if entry is not None else NOT_FOUND

    def all(self) -> list[Device]:
        """
        All devices, ordered case-insensitively by friendly name.

        Devices without a name sort first; ties keep insertion order.
        """
        entries = sorted(self._entries.values(), key=lambda e: e.sequence)
        entries.sort(key=lambda e: (e.device.friendly_name or "").casefold())
        return [e.device for e in entries]

    def find_by_udn(self, udn: str) -> Union[Device, _NotFound]:
        """
        Find a device by UDN.

        When several locations report the same UDN, the most recently seen
        one is returned. Unknown or empty UDNs return NOT_FOUND.
        """
        if not udn:
            return NOT_FOUND

        best: Union[_Entry, None] = None
        for entry in self._entries.values():
            if entry.device.udn != udn:
                continue
            if best is None or entry.last_seen >= best.last_seen:
                best = entry
        return best.device if best is not None else NOT_FOUND

    def remove(self, key: str) -> bool:
        """Drop an entry. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def evict_stale(self) -> list[Device]:
        """
        Drop entries older than ttl.

        Returns:
            The evicted devices
        """
        if self.ttl <= 0:
            return []

        cutoff = self._clock() - self.ttl
        stale = [key for key, entry in self._entries.items() if entry.last_seen < cutoff]
        evicted = [self._entries.pop(key).device for key in stale]
        for device in evicted:
            logger.info(f"Evicted stale device {device.friendly_name!r} ({device.location})")
        return evicted

    def clear(self) -> None:
        self._entries.clear()
