""" MQTT client setup and publish wrapper.

Topics:
- syr/syrlex2mqtt/state: bridge liveness (retained, last will "offline").
- syr/<id>/availability: device liveness (retained).
- syr/<id>/state: JSON state payload.
- syr/<id>/set_<field>: commands from Home Assistant.
"""
import json
import re
import ssl

import paho.mqtt.client as mqtt

from .log import log

TOPIC_ROOT = "syr"
BRIDGE_STATE_TOPIC = f"{TOPIC_ROOT}/syrlex2mqtt/state"
DISCOVERY_PRE = "homeassistant"
HA_STATUS_TOPIC = f"{DISCOVERY_PRE}/status"
ONLINE = "online"
OFFLINE = "offline"


def availability_topic(identifier: str) -> str:
    return f"{TOPIC_ROOT}/{identifier}/availability"


def state_topic(identifier: str) -> str:
    return f"{TOPIC_ROOT}/{identifier}/state"


def command_topic(identifier: str, field: str) -> str:
    return f"{TOPIC_ROOT}/{identifier}/set_{field}"


_COMMAND_RE = re.compile(rf"^{TOPIC_ROOT}/([\w-]*)/set_([\w-]*)$")


def parse_command_topic(topic: str):
    """`syr/<id>/set_<field>` -> (id, field); None for any other topic."""
    m = _COMMAND_RE.match(topic)
    if m is None or m.group(2) == "state":
        return None
    return m.group(1), m.group(2)


class Publisher:
    """Thin wrapper over the paho client used by every component that publishes."""

    def __init__(self, client):
        self.client = client

    # JSON-encode dicts/lists, debug-log, hand over to paho (which queues in order)
    def pub(self, topic, payload, retain=False, qos=0):
        if isinstance(payload, (dict, list)):
            payload = json.dumps(payload, ensure_ascii=False)
        log("PUB", topic, f"len={len(str(payload))}", f"retain={retain}")
        return self.client.publish(topic, payload, qos=qos, retain=retain)

    def publish_availability(self, identifier=None, state=ONLINE):
        if identifier is not None:
            self.pub(availability_topic(identifier), state, retain=True)
        self.pub(BRIDGE_STATE_TOPIC, state, retain=True)


def create_client(config, client_id="syr-bridge"):
    """Build a paho client with credentials, optional TLS and the bridge's last will."""
    host, port, use_tls = config.broker
    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True,
                         protocol=mqtt.MQTTv311)
    client.username_pw_set(config.username, config.password)
    if use_tls:
        client.tls_set(cert_reqs=ssl.CERT_REQUIRED)
    client.will_set(BRIDGE_STATE_TOPIC, OFFLINE, retain=True)
    return client, host, port
