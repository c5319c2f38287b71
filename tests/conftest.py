"""Shared fixtures for syr_bridge tests."""

import json

import pytest

from syr_bridge import codec
from syr_bridge.log import set_verbose
from syr_bridge.mqtt import Publisher
from syr_bridge.registry import DeviceRegistry
from syr_bridge.router import Router


class FakeMqttClient:
    """Records publish() calls instead of talking to a broker."""

    def __init__(self):
        self.published = []
        self.subscriptions = []

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, retain))

    def subscribe(self, topic, qos=0):
        self.subscriptions.append(topic)

    def topics(self):
        return [t for t, _, _ in self.published]

    def payload(self, topic):
        for t, p, _ in self.published:
            if t == topic:
                return p
        raise KeyError(topic)

    def json(self, topic):
        return json.loads(self.payload(topic))


def full_values(model="LEXplus10SL", serial="12345", extra=None, **overrides):
    """A complete GetAllCommands poll as the softener reports it."""
    values = {
        "getSRN": serial,
        "getVER": "2.9",
        "getFIR": "SLPL",
        "getTYP": "80",
        "getCNA": model,
        "getIPA": "192.168.1.50",
        "getSV1": "12",
        "getRPD": "3",
        "getFLO": "4",
        "getLAR": "1700000000",
        "getTOR": "512",
        "getRG1": "0",
        "getCS1": "76",
        "getRES": "1840",
        "getSS1": "9",
        "getSTA": "",
        "getCOF": "123456",
        "getRTH": "2",
        "getRTM": "0",
        "getRPW": "5",
        "getAB": "1",
        "getCEL": "118",
    }
    for p, v in (extra or {}).items():
        values["get" + p] = v
    values.update(overrides)
    return values


def envelope_for(values):
    return codec.encode(values.items())


@pytest.fixture(autouse=True)
def quiet_logging():
    set_verbose(False)
    yield
    set_verbose(False)


@pytest.fixture
def mqtt_client():
    return FakeMqttClient()


@pytest.fixture
def publisher(mqtt_client):
    return Publisher(mqtt_client)


@pytest.fixture
def registry(publisher):
    return DeviceRegistry(publisher)


@pytest.fixture
def router(registry, publisher):
    return Router(registry, publisher)
