""" Known softeners and their pending writes.

One DeviceRecord exists per physical unit (identity = lowercase model + serial)
for the lifetime of the process. Polls arrive on HTTP server threads while
commands arrive on the paho network thread, so creation and every setter
queue access are guarded by locks.
"""
import threading
from dataclasses import dataclass, field

from . import discovery
from .log import info, log

LEAKAGE_PROTECTION_MODEL = "LEXplus10SL"


def device_identifier(model: str, serial: str) -> str:
    return (str(model) + str(serial)).lower()


class SetterQueue:
    """Pending `set` writes for one device, delivered at most once.

    A later write for the same code replaces the pending value but keeps its
    place in the queue.
    """

    def __init__(self):
        self._pending = {}
        self._lock = threading.Lock()

    def put(self, code: str, value):
        self.put_many([(code, value)])

    def put_many(self, writes):
        """Queue several writes under one lock so a poll never sees half of them."""
        with self._lock:
            for code, value in writes:
                self._pending[code] = str(value)

    def drain(self) -> tuple:
        """Remove and return every pending write as ((code, value), ...)."""
        with self._lock:
            items = tuple(self._pending.items())
            self._pending.clear()
        return items

    def snapshot(self) -> tuple:
        with self._lock:
            return tuple(self._pending.items())

    def __len__(self):
        with self._lock:
            return len(self._pending)


@dataclass
class DeviceRecord:
    model: str
    serial: str
    sw_version: str
    base_url: str
    has_leakage_protection: bool = False
    setters: SetterQueue = field(default_factory=SetterQueue, repr=False, compare=False)

    @property
    def identifier(self) -> str:
        return device_identifier(self.model, self.serial)


class DeviceRegistry:
    """Creates each DeviceRecord once and announces it to Home Assistant."""

    def __init__(self, publisher, extra_properties=()):
        self.publisher = publisher
        self.extra_properties = tuple(extra_properties)
        self._devices = {}
        self._lock = threading.Lock()

    def get(self, identifier: str):
        with self._lock:
            return self._devices.get(identifier)

    def identifiers(self) -> list:
        with self._lock:
            return list(self._devices)

    def __contains__(self, identifier):
        return self.get(identifier) is not None

    def __len__(self):
        with self._lock:
            return len(self._devices)

    def get_or_create(self, model, serial, sw_version, base_url) -> DeviceRecord:
        """Return the record for model+serial, announcing it on first contact.

        The lock is held while discovery is issued so a second poll for the
        same new unit cannot publish state before the entities exist.
        """
        identifier = device_identifier(model, serial)
        with self._lock:
            device = self._devices.get(identifier)
            if device is not None:
                return device
            device = DeviceRecord(
                model=model,
                serial=serial,
                sw_version=sw_version,
                base_url=base_url,
                has_leakage_protection=(model == LEAKAGE_PROTECTION_MODEL),
            )
            info(f"New device '{identifier}' at {base_url}")
            count = discovery.publish_discovery(self.publisher, device, self.extra_properties)
            log("Discovery published for", identifier, f"entities={count}")
            self.publisher.publish_availability(identifier)
            self._devices[identifier] = device
            return device

    def republish_availability(self):
        """Re-announce every known unit, e.g. after Home Assistant restarted."""
        identifiers = self.identifiers()
        for identifier in identifiers:
            self.publisher.publish_availability(identifier)
        if not identifiers:
            self.publisher.publish_availability()
