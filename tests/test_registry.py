"""
Tests for the device registry, setter queue and discovery descriptors.

Tests cover:
- Identity derivation and leakage-protection capability
- One-time discovery and availability per identity
- Discovery descriptor contents (topics, templates, options, extras)
- Setter queue put/drain semantics and thread safety
"""

import json
import threading

import pytest

from syr_bridge import discovery, weekdays
from syr_bridge.mqtt import BRIDGE_STATE_TOPIC
from syr_bridge.registry import DeviceRecord, DeviceRegistry, SetterQueue, device_identifier

BASE_FIELDS = [
    "current_water_flow", "salt_remaining", "remaining_resin_capacity", "remaining_water_capacity",
    "total_water_consumption", "number_of_regenerations", "last_regeneration", "status_message",
    "regeneration_running", "start_regeneration", "salt_in_stock", "regeneration_week_days",
    "regeneration_interval", "regeneration_time",
]


def discovery_topics(mqtt_client):
    return [t for t in mqtt_client.topics() if t.startswith("homeassistant/")]


class TestIdentity:
    """Tests for identity derivation and the record type."""

    def test_identifier_lowercase(self):
        assert device_identifier("LEXplus10SL", "12345") == "lexplus10sl12345"

    def test_record_identifier(self):
        rec = DeviceRecord("LEXplus10S", "AB9", "2.9", "http://10.0.0.2")
        assert rec.identifier == "lexplus10sab9"
        assert rec.has_leakage_protection is False


class TestGetOrCreate:
    """Tests for DeviceRegistry.get_or_create()."""

    def test_creates_once(self, registry, mqtt_client):
        first = registry.get_or_create("LEXplus10SL", "12345", "2.9", "http://192.168.1.50")
        count = len(mqtt_client.published)
        second = registry.get_or_create("LEXplus10SL", "12345", "3.0", "http://192.168.1.51")

        assert first is second
        assert len(mqtt_client.published) == count
        assert len(registry) == 1
        assert "lexplus10sl12345" in registry

    def test_leakage_protection_exact_model(self, registry):
        assert registry.get_or_create("LEXplus10SL", "1", "", "").has_leakage_protection is True
        assert registry.get_or_create("LEXplus10S", "1", "", "").has_leakage_protection is False
        assert registry.get_or_create("lexplus10sl", "2", "", "").has_leakage_protection is False

    def test_discovery_for_base_model(self, registry, mqtt_client):
        registry.get_or_create("LEXplus10S", "777", "2.9", "http://10.0.0.2")
        topics = discovery_topics(mqtt_client)

        assert len(topics) == len(BASE_FIELDS)
        assert "homeassistant/sensor/syr_watersoftening/lexplus10s777_current_water_flow/config" in topics
        assert "homeassistant/binary_sensor/syr_watersoftening/lexplus10s777_regeneration_running/config" in topics
        assert "homeassistant/button/syr_watersoftening/lexplus10s777_start_regeneration/config" in topics
        assert not any(t.endswith("_valve/config") for t in topics)
        assert not any("water_temperature" in t for t in topics)

    def test_discovery_for_leakage_model(self, registry, mqtt_client):
        registry.get_or_create("LEXplus10SL", "12345", "2.9", "http://192.168.1.50")
        topics = discovery_topics(mqtt_client)

        assert len(topics) == len(BASE_FIELDS) + 2
        assert "homeassistant/sensor/syr_watersoftening/lexplus10sl12345_water_temperature/config" in topics
        assert "homeassistant/valve/syr_watersoftening/lexplus10sl12345_valve/config" in topics

    def test_discovery_retained_then_availability(self, registry, mqtt_client):
        registry.get_or_create("LEXplus10SL", "12345", "2.9", "http://192.168.1.50")
        published = mqtt_client.published
        n = len(discovery_topics(mqtt_client))

        assert all(retain for _, _, retain in published[:n])
        assert published[n:] == [
            ("syr/lexplus10sl12345/availability", "online", True),
            (BRIDGE_STATE_TOPIC, "online", True),
        ]

    def test_extra_properties(self, publisher, mqtt_client):
        registry = DeviceRegistry(publisher, ["ALM"])
        registry.get_or_create("LEXplus10S", "1", "", "")
        conf = mqtt_client.json("homeassistant/sensor/syr_watersoftening/lexplus10s1_ALM/config")

        assert conf["name"] == "ALM"
        assert conf["value_template"] == "{{ value_json.ALM}}"

    def test_get_unknown(self, registry):
        assert registry.get("nope") is None

    def test_concurrent_creation_single_discovery(self, registry, mqtt_client):
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(registry.get_or_create("LEXplus10SL", "12345", "", ""))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(r) for r in results}) == 1
        assert len(discovery_topics(mqtt_client)) == len(BASE_FIELDS) + 2

    def test_republish_availability(self, registry, mqtt_client):
        registry.get_or_create("LEXplus10S", "1", "", "")
        registry.get_or_create("LEXplus10S", "2", "", "")
        mqtt_client.published.clear()

        registry.republish_availability()

        assert mqtt_client.topics() == [
            "syr/lexplus10s1/availability", BRIDGE_STATE_TOPIC,
            "syr/lexplus10s2/availability", BRIDGE_STATE_TOPIC,
        ]

    def test_republish_availability_without_devices(self, registry, mqtt_client):
        registry.republish_availability()
        assert mqtt_client.published == [(BRIDGE_STATE_TOPIC, "online", True)]


class TestDiscoveryDescriptors:
    """Tests for individual discovery payloads."""

    @pytest.fixture
    def record(self):
        return DeviceRecord("LEXplus10SL", "12345", "2.9", "http://192.168.1.50", True)

    @pytest.fixture
    def configs(self, record):
        return {field: (component, conf) for component, field, conf in discovery.entities_for(record)}

    def test_sensor(self, configs):
        component, conf = configs["current_water_flow"]
        assert component == "sensor"
        assert conf == {
            "name": "Current Water Flow",
            "unit_of_measurement": "l/min",
            "icon": "mdi:water",
            "state_topic": "syr/lexplus10sl12345/state",
            "availability": [
                {"topic": "syr/syrlex2mqtt/state"},
                {"topic": "syr/lexplus10sl12345/availability"},
            ],
            "value_template": "{{ value_json.current_water_flow}}",
            "unique_id": "lexplus10sl12345_current_water_flow",
            "device": {
                "identifiers": ["12345"],
                "manufacturer": "Syr",
                "name": "LEXplus10SL",
                "model": "LEXplus10SL",
                "sw_version": "2.9",
                "configuration_url": "http://192.168.1.50",
            },
        }

    def test_no_null_values(self, configs):
        for _, conf in configs.values():
            assert None not in conf.values()
            json.dumps(conf)

    def test_button_is_stateless(self, configs):
        _, conf = configs["start_regeneration"]
        assert conf["command_topic"] == "syr/lexplus10sl12345/set_start_regeneration"
        assert "state_topic" not in conf
        assert "value_template" not in conf

    def test_select_options(self, configs):
        _, conf = configs["regeneration_week_days"]
        assert conf["options"] == weekdays.options()
        assert conf["entity_category"] == "config"
        assert conf["command_topic"] == "syr/lexplus10sl12345/set_regeneration_week_days"

    def test_numbers(self, configs):
        _, salt = configs["salt_in_stock"]
        _, interval = configs["regeneration_interval"]
        assert (salt["min"], salt["max"], salt["mode"]) == (0, 25, "box")
        assert (interval["min"], interval["max"], interval["unit_of_measurement"]) == (1, 10, "days")

    def test_text_pattern(self, configs):
        _, conf = configs["regeneration_time"]
        assert conf["pattern"] == r"\d?\d:\d\d"
        assert conf["mode"] == "text"

    def test_valve(self, configs):
        component, conf = configs["valve"]
        assert component == "valve"
        assert conf["device_class"] == "water"
        assert conf["command_topic"] == "syr/lexplus10sl12345/set_valve"


class TestSetterQueue:
    """Tests for SetterQueue."""

    def test_drain_consumes(self):
        q = SetterQueue()
        q.put("setRPD", "3")
        q.put("setSV1", 10)

        assert q.drain() == (("setRPD", "3"), ("setSV1", "10"))
        assert q.drain() == ()
        assert len(q) == 0

    def test_later_write_replaces_value_keeps_position(self):
        q = SetterQueue()
        q.put("setRTH", "2")
        q.put("setRTM", "30")
        q.put("setRTH", "4")

        assert q.snapshot() == (("setRTH", "4"), ("setRTM", "30"))

    def test_put_many_is_seen_whole(self):
        q = SetterQueue()
        q.put("setAB", "1")
        q.put_many([("setRTH", "3"), ("setRTM", 15)])

        assert q.drain() == (("setAB", "1"), ("setRTH", "3"), ("setRTM", "15"))

    def test_put_many_never_split_by_drain(self):
        q = SetterQueue()
        batches = []
        done = threading.Event()

        def writer():
            for i in range(300):
                q.put_many([("setRTH", str(i)), ("setRTM", str(i))])
            done.set()

        def reader():
            while not done.is_set():
                batches.append(q.drain())
            batches.append(q.drain())

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for batch in batches:
            codes = [code for code, _ in batch]
            assert codes in ([], ["setRTH", "setRTM"])

    def test_concurrent_puts_not_lost(self):
        q = SetterQueue()
        drained = []

        def writer(n):
            for i in range(200):
                q.put(f"setX{n}_{i}", i)

        def reader():
            for _ in range(50):
                drained.extend(q.drain())

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        threads.append(threading.Thread(target=reader))
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        drained.extend(q.drain())

        assert len(drained) == 800
        assert len({code for code, _ in drained}) == 800
