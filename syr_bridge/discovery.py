""" Home Assistant discovery descriptors for one softener.

Discovery topics go under `homeassistant/<component>/syr_watersoftening/<id>_<field>/config`
and are published retained, so HA rebuilds its entities after a restart
without the bridge replaying anything.
"""
from . import weekdays
from .mqtt import BRIDGE_STATE_TOPIC, DISCOVERY_PRE, availability_topic, command_topic, state_topic

NODE_ID = "syr_watersoftening"
MANUFACTURER = "Syr"

# (component, field, name, device_class, entity_category, unit, icon, extra)
BASE_ENTITIES = (
    ("sensor", "current_water_flow", "Current Water Flow", None, None, "l/min", "mdi:water", None),
    ("sensor", "salt_remaining", "Salt Remaining", None, None, "weeks", "mdi:cup", None),
    ("sensor", "remaining_resin_capacity", "Remaining Resin Capacity", None, "diagnostic", "%", "mdi:water-percent", None),
    ("sensor", "remaining_water_capacity", "Remaining Water Capacity", "water", "diagnostic", "L", "mdi:water", None),
    ("sensor", "total_water_consumption", "Total Water Consumption", "water", None, "L", "mdi:water", None),
    ("sensor", "number_of_regenerations", "Number of Regenerations", None, "diagnostic", None, "mdi:counter", None),
    ("sensor", "last_regeneration", "Last Regeneration", "timestamp", None, None, "mdi:clock-time-four-outline", None),
    ("sensor", "status_message", "Status Message", None, None, None, "mdi:message-text", None),
    ("binary_sensor", "regeneration_running", "Regeneration Running", "running", None, None, None, None),
    ("button", "start_regeneration", "Start Regeneration", None, None, None, None, None),
    ("number", "salt_in_stock", "Salt in Stock", "weight", None, "kg", "mdi:cup", {"min": 0, "max": 25, "mode": "box"}),
    ("select", "regeneration_week_days", "Regeneration Week Days", None, "config", None, "mdi:calendar-clock", "weekdays"),
    ("number", "regeneration_interval", "Regeneration Interval", None, "config", "days", "mdi:calendar-clock", {"min": 1, "max": 10, "mode": "box"}),
    ("text", "regeneration_time", "Regeneration Time (Hour:Minutes)", None, "config", None, "mdi:clock", {"mode": "text", "pattern": r"\d?\d:\d\d"}),
)

LEAKAGE_ENTITIES = (
    ("sensor", "water_temperature", "Water Temperature", "temperature", None, "\u00B0C", "mdi:thermometer-water", None),
    ("valve", "valve", "Valve", "water", None, None, "mdi:pipe-valve", None),
)

# Components HA lets the user change; these get a command topic
_CONTROLS = ("button", "number", "select", "text", "valve")
# Buttons are stateless
_STATELESS = ("button",)


def make_device(record) -> dict:
    """HA device block shared by every entity of one softener."""
    return {
        "identifiers": [record.serial],
        "manufacturer": MANUFACTURER,
        "name": record.model,
        "model": record.model,
        "sw_version": record.sw_version,
        "configuration_url": record.base_url,
    }


def availability(identifier: str) -> list:
    return [
        {"topic": BRIDGE_STATE_TOPIC},
        {"topic": availability_topic(identifier)},
    ]


def discovery_topic(component: str, identifier: str, field: str) -> str:
    return f"{DISCOVERY_PRE}/{component}/{NODE_ID}/{identifier}_{field}/config"


def entity_config(record, component, field, name, device_class=None, entity_category=None,
                  unit=None, icon=None, extra=None) -> dict:
    identifier = record.identifier
    conf = {
        "name": name,
        "device_class": device_class,
        "entity_category": entity_category,
        "unit_of_measurement": unit,
        "icon": icon,
    }
    if component not in _STATELESS:
        conf["state_topic"] = state_topic(identifier)
    if component in _CONTROLS:
        conf["command_topic"] = command_topic(identifier, field)
    conf["availability"] = availability(identifier)
    if component not in _STATELESS:
        conf["value_template"] = "{{ value_json." + field + "}}"
    conf["unique_id"] = f"{identifier}_{field}"
    if extra == "weekdays":
        conf["options"] = weekdays.options()
    elif extra:
        conf.update(extra)
    conf["device"] = make_device(record)
    # HA rejects explicit nulls for several of these keys
    return {k: v for k, v in conf.items() if v is not None}


def entities_for(record, extra_properties=()) -> list:
    """Every (component, field, config) pair a softener exposes, in publish order."""
    rows = list(BASE_ENTITIES)
    if record.has_leakage_protection:
        rows.extend(LEAKAGE_ENTITIES)
    rows.extend(("sensor", p, p, None, None, None, "mdi:water", None) for p in extra_properties)
    return [(row[0], row[1], entity_config(record, *row)) for row in rows]


def publish_discovery(publisher, record, extra_properties=()) -> int:
    count = 0
    for component, field, conf in entities_for(record, extra_properties):
        publisher.pub(discovery_topic(component, record.identifier, field), conf, retain=True)
        count += 1
    return count
