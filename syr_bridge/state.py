""" Translation between device codes and Home Assistant fields.

Incoming: a complete poll (every requested code present) becomes the JSON
state payload published on `syr/<id>/state`.
Outgoing: a command on `syr/<id>/set_<field>` becomes one or more pending
`set` writes on the device's setter queue.
"""
import re
from datetime import datetime

from . import weekdays
from .log import log

# state field -> get code, copied raw (empty -> None)
RAW_FIELDS = (
    ("current_water_flow", "getFLO"),
    ("salt_remaining", "getSS1"),
    ("remaining_resin_capacity", "getCS1"),
    ("remaining_water_capacity", "getRES"),
    ("total_water_consumption", "getCOF"),
    ("number_of_regenerations", "getTOR"),
)

VALVE_OPEN = "1"
VALVE_CLOSE = "2"
START_REGENERATION = "0"
_TIME_RE = re.compile(r"(\d?\d):(\d\d)")


def format_timestamp(epoch) -> str:
    """Device epoch seconds -> local time with offset, e.g. 2024-03-01T04:00:00+01:00."""
    return datetime.fromtimestamp(int(epoch)).astimezone().isoformat(timespec="seconds")


def _or_none(value):
    return value if value else None


def _convert(fn, value):
    if not value:
        return None
    try:
        return fn(value)
    except (TypeError, ValueError, OverflowError, OSError):
        log("Cannot convert", repr(value), "with", fn.__name__)
        return None


def _decidegrees(value):
    return float(value) / 10.0


def _weekdays_text(value):
    return weekdays.to_text(int(value))


def is_complete(values, codes) -> bool:
    return all(code in values for code in codes)


def translate(values, codes, has_leakage_protection=False, extra_properties=()):
    """Build the state payload, or None while the poll is missing any of `codes`.

    A partial poll is not representative and must not overwrite the last good
    state kept by Home Assistant.
    """
    if not is_complete(values, codes):
        return None

    payload = {field: _or_none(values.get(code)) for field, code in RAW_FIELDS}
    payload["last_regeneration"] = _convert(format_timestamp, values.get("getLAR"))
    payload["status_message"] = _or_none(values.get("getSTA"))
    payload["salt_in_stock"] = _or_none(values.get("getSV1"))
    payload["regeneration_interval"] = _or_none(values.get("getRPD"))
    payload["regeneration_week_days"] = _convert(_weekdays_text, values.get("getRPW"))
    rth, rtm = values.get("getRTH"), values.get("getRTM")
    payload["regeneration_time"] = f"{rth.zfill(2)}:{rtm.zfill(2)}" if rth and rtm else None
    payload["regeneration_running"] = "ON" if values.get("getRG1") == "1" else "OFF"

    for p in extra_properties:
        payload[p] = _or_none(values.get("get" + p))

    if has_leakage_protection:
        payload["water_temperature"] = _convert(_decidegrees, values.get("getCEL"))
        payload["valve"] = "open" if values.get("getAB") == VALVE_OPEN else "closed"

    return payload


def setter_writes(field: str, raw: str) -> list:
    """Map one HA command to the device writes it stands for; [] when not applicable."""
    if not raw:
        return []
    if field == "salt_in_stock":
        return [("setSV1", raw)]
    if field == "regeneration_interval":
        return [("setRPD", raw)]
    if field == "regeneration_week_days":
        return [("setRPW", str(weekdays.from_text(raw)))]
    if field == "regeneration_time":
        m = _TIME_RE.search(raw)
        if m is None:
            return []
        return [("setRTH", m.group(1)), ("setRTM", m.group(2))]
    if field == "start_regeneration":
        return [("setSIR", START_REGENERATION)] if raw == "PRESS" else []
    if field == "valve":
        if raw == "OPEN":
            return [("setAB", VALVE_OPEN)]
        if raw == "CLOSE":
            return [("setAB", VALVE_CLOSE)]
    return []


def enqueue(registry, identifier: str, field: str, raw) -> bool:
    """Queue the writes for a command; unknown devices and fields are ignored.

    Returns True when at least one write was queued.
    """
    device = registry.get(identifier)
    if device is None:
        return False
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", "ignore")
    writes = setter_writes(field, raw)
    device.setters.put_many(writes)
    if writes:
        log("Queued", identifier, writes)
    return bool(writes)
