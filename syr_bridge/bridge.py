""" BRIDGE DOC: SYR LEX softener MQTT bridge

High-level overview:
- Serves the SYR Connect polls (`GetBasicCommands`/`GetAllCommands`) over HTTP and HTTPS.
- Publishes Home Assistant discovery once per softener, then state under `syr/<id>/state`.
- Collects HA commands from `syr/<id>/set_<field>` and hands them to the device
  in the reply to its next poll.
"""
import os
import signal
import ssl
import sys
import threading
import time

from . import __version__, state
from .config import load_config
from .errors import ConfigError
from .log import info, log, set_verbose
from .mqtt import HA_STATUS_TOPIC, OFFLINE, ONLINE, TOPIC_ROOT, Publisher, create_client, parse_command_topic
from .registry import DeviceRegistry
from .router import Router, make_server

LISTEN_HOST = "0.0.0.0"


class Bridge:
    """Wires the paho client, the device registry and the HTTP listeners together."""

    def __init__(self, config, client):
        self.config = config
        self.client = client
        self.publisher = Publisher(client)
        self.registry = DeviceRegistry(self.publisher, config.additional_properties)
        self.router = Router(self.registry, self.publisher, device_proxy=config.device_proxy)
        self.servers = []
        self._started = threading.Event()
        client.on_connect = self.on_connect
        client.on_message = self.on_message

    # [BRIDGE DOC] Subscribe to command topics and HA restarts, start the listeners once.
    def on_connect(self, c, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            info("MQTT connect refused:", reason_code)
            return
        info("Connected to MQTT server")
        c.subscribe(f"{TOPIC_ROOT}/#", qos=0)
        c.subscribe(HA_STATUS_TOPIC, qos=0)
        # Our own last will may have marked the bridge offline while disconnected
        self.registry.republish_availability()
        if not self._started.is_set():
            self._started.set()
            self.start_servers()

    # [BRIDGE DOC] Route HA commands to setter queues; re-announce when HA comes back.
    def on_message(self, c, userdata, msg):
        try:
            t = msg.topic
            payload = msg.payload.decode("utf-8", "ignore") if msg.payload else ""
            if t == HA_STATUS_TOPIC:
                if payload.strip().lower() == ONLINE:
                    log("Home Assistant online, re-announcing availability")
                    self.registry.republish_availability()
                return
            parsed = parse_command_topic(t)
            if parsed is None:
                return
            identifier, field = parsed
            log(f"Received message for topic {t}:", payload)
            if not state.enqueue(self.registry, identifier, field, payload):
                log("Ignored command", t)
        except Exception as e:
            info("on_message error:", repr(e))

    def _ssl_context(self):
        cert, key = self.config.ssl_cert, self.config.ssl_key
        if not (os.path.isfile(cert) and os.path.isfile(key)):
            info(f"No certificate at {cert}/{key}, HTTPS listener disabled")
            return None
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ctx.load_cert_chain(cert, key)
        return ctx

    def start_servers(self):
        listeners = [("HTTP", self.config.http_port, None)]
        ctx = self._ssl_context()
        if ctx is not None:
            listeners.append(("HTTPS", self.config.https_port, ctx))
        for proto, port, context in listeners:
            server = make_server(self.router, LISTEN_HOST, port, context)
            threading.Thread(target=server.serve_forever, name=f"syr-{proto.lower()}", daemon=True).start()
            self.servers.append(server)
            info(f"{proto} listening on port {port}")

    def shutdown(self):
        for server in self.servers:
            server.shutdown()
            server.server_close()
        self.publisher.publish_availability(state=OFFLINE)
        self.client.disconnect()


# [BRIDGE DOC] Load config, connect to the broker and serve until terminated.
def main():
    try:
        config = load_config()
    except ConfigError as e:
        info(e)
        sys.exit(1)

    set_verbose(config.verbose)
    client, host, port = create_client(config)
    bridge = Bridge(config, client)
    info(
        f"syr-bridge {__version__} startup:",
        f"broker={host}:{port}",
        f"user={config.username}",
        f"http={config.http_port}",
        f"https={config.https_port}",
        f"proxy={config.device_proxy}",
        f"extra={','.join(config.additional_properties) or '-'}",
        f"verbose={config.verbose}",
    )

    def _terminate(signum, frame):
        info("Signal", signum, "received, shutting down")
        bridge.shutdown()

    signal.signal(signal.SIGTERM, _terminate)
    signal.signal(signal.SIGINT, _terminate)

    # [BRIDGE DOC] MQTT connect loop with exponential backoff on errors; returns after shutdown().
    backoff = 1
    while True:
        try:
            info(f"Connecting to MQTT server '{config.broker_url}' with username '{config.username}'")
            client.connect(host, port, keepalive=60)
            client.loop_forever(retry_first_connection=True)
            return
        except OSError as e:
            info("MQTT reconnect in", backoff, "sec:", e)
            time.sleep(backoff)
            backoff = min(30, backoff * 2)


if __name__ == "__main__":
    main()
