""" Bridge configuration from environment variables.

Environment variables:
- MQTT_SERVER: broker URL, e.g. mqtt://core-mosquitto:1883 (mqtts:// for TLS). Required.
- MQTT_USER/MQTT_PASSWORD: broker credentials. Required.
- HTTP_PORT/HTTPS_PORT: listen ports for the device polls (default: 80/443).
- SSL_CERT/SSL_KEY: certificate and key for the HTTPS listener (default: server.cert/server.key).
- VERBOSE_LOGGING: "1" or "true" to log every request and publish.
- ADDITIONAL_PROPERTIES: comma-separated property mnemonics exposed as extra sensors (e.g. "ALM,WHU").
- DEVICE_PROXY: "1" or "true" to query the device itself on GetBasicCommands.
"""
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from .errors import ConfigError

DEFAULT_HTTP_PORT = 80
DEFAULT_HTTPS_PORT = 443
DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTTS_PORT = 8883


def _flag(value) -> bool:
    if not value:
        return False
    return value == "1" or value.strip().upper() == "TRUE"


def _port(environ, name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a port number, got {raw!r}") from None
    if not 0 < port < 65536:
        raise ConfigError(f"{name} out of range: {port}")
    return port


def split_properties(raw) -> list:
    if not raw:
        return []
    return [p.strip() for p in raw.split(",") if p.strip()]


@dataclass(frozen=True)
class Config:
    broker_url: str
    username: str
    password: str
    http_port: int = DEFAULT_HTTP_PORT
    https_port: int = DEFAULT_HTTPS_PORT
    ssl_cert: str = "server.cert"
    ssl_key: str = "server.key"
    verbose: bool = False
    additional_properties: list = field(default_factory=list)
    device_proxy: bool = False

    @property
    def broker(self):
        """Return (host, port, use_tls) parsed from the broker URL."""
        url = self.broker_url if "://" in self.broker_url else f"mqtt://{self.broker_url}"
        parsed = urlparse(url)
        use_tls = parsed.scheme in ("mqtts", "ssl", "tls")
        port = parsed.port or (DEFAULT_MQTTS_PORT if use_tls else DEFAULT_MQTT_PORT)
        return parsed.hostname or "localhost", port, use_tls


def load_config(environ=None) -> Config:
    """Read the bridge configuration, raising ConfigError when the broker settings are absent."""
    if environ is None:
        environ = os.environ
    broker_url = environ.get("MQTT_SERVER")
    username = environ.get("MQTT_USER")
    password = environ.get("MQTT_PASSWORD")
    if not broker_url or not username or not password:
        raise ConfigError("Please set variables MQTT_SERVER, MQTT_USER and MQTT_PASSWORD")

    return Config(
        broker_url=broker_url,
        username=username,
        password=password,
        http_port=_port(environ, "HTTP_PORT", DEFAULT_HTTP_PORT),
        https_port=_port(environ, "HTTPS_PORT", DEFAULT_HTTPS_PORT),
        ssl_cert=environ.get("SSL_CERT") or "server.cert",
        ssl_key=environ.get("SSL_KEY") or "server.key",
        verbose=_flag(environ.get("VERBOSE_LOGGING")),
        additional_properties=split_properties(environ.get("ADDITIONAL_PROPERTIES")),
        device_proxy=_flag(environ.get("DEVICE_PROXY")),
    )
