""" HTTP endpoints the softener polls, standing in for the SYR Connect cloud.

- .../GetBasicCommands: the device asks which identity codes to report.
- .../GetAllCommands: the device posts its values (form field `xml=`) and
  receives the reply with pending writes merged in.

Every reply is a valid envelope: on any failure the device gets an empty
fallback so it keeps polling instead of stalling.
"""
from http import HTTPStatus
from http.client import HTTPException
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.error import URLError
from urllib.parse import urlencode, urlparse
from urllib.request import Request, urlopen

from . import codec, state
from .errors import CommandParseError
from .log import info, log
from .mqtt import state_topic

DEVICE_PATH = "/WebServices/SyrConnectLimexWebService.asmx/GetAllCommands"
PROXY_TIMEOUT = 8
CONTENT_TYPE = "text/xml"


def normalize_remote_address(addr: str) -> str:
    """Strip the IPv4-mapped IPv6 prefix (::ffff:1.2.3.4 -> 1.2.3.4)."""
    if addr and addr.startswith("::ffff:"):
        return addr.split(":")[-1]
    return addr


def post_xml_to_device(host: str, envelope: str, path=DEVICE_PATH, port=80, timeout=PROXY_TIMEOUT):
    """POST a request envelope to the device itself; returns (status, body)."""
    data = urlencode({"xml": envelope}).encode("utf-8")
    req = Request(f"http://{host}:{port}{path}", data=data, method="POST",
                  headers={"Content-Type": "application/x-www-form-urlencoded"})
    with urlopen(req, timeout=timeout) as resp:
        return resp.status, resp.read().decode("utf-8", "replace")


class Router:
    """Dispatches device polls to the registry, translator and setter queues."""

    def __init__(self, registry, publisher, device_proxy=False, proxy=post_xml_to_device):
        self.registry = registry
        self.publisher = publisher
        self.device_proxy = device_proxy
        self.proxy = proxy
        self.codes = codec.all_codes(registry.extra_properties)

    def basic_fallback(self) -> str:
        return codec.encode_request(codec.BASIC_CODES)

    def all_fallback(self) -> str:
        return codec.encode_response(self.codes)

    def process_values(self, values):
        """Register the unit and publish its state when the poll is complete.

        Returns the DeviceRecord, or None when the values carry no identity.
        """
        model, serial = values.get("getCNA"), values.get("getSRN")
        if not model or not serial:
            log("Poll without model/serial, ignoring values")
            return None
        device = self.registry.get_or_create(model, serial, values.get("getVER", ""),
                                             "http://" + values.get("getIPA", ""))
        payload = state.translate(values, self.codes, device.has_leakage_protection,
                                  self.registry.extra_properties)
        if payload is None:
            log("Incomplete poll from", device.identifier, "- state not published")
        else:
            log("Publishing state for", device.identifier, payload)
            self.publisher.pub(state_topic(device.identifier), payload)
        return device

    def all_commands(self, envelope) -> str:
        if not envelope:
            log("GetAllCommands without body, sending empty response")
            return self.all_fallback()
        try:
            values = codec.decode(envelope)
            device = self.process_values(values)
        except CommandParseError as e:
            info("XML parse error in GetAllCommands:", e)
            return self.all_fallback()
        except Exception as e:
            info("GetAllCommands processing error:", repr(e))
            return self.all_fallback()
        if device is None:
            return self.all_fallback()
        response = codec.encode_response(self.codes, device.setters.drain())
        log("Response to GetAllCommands:", response)
        return response

    def basic_commands(self, client_ip: str) -> str:
        if not self.device_proxy or not client_ip:
            return self.basic_fallback()
        try:
            log(f"Proxying GetBasicCommands -> POST to device {client_ip}{DEVICE_PATH}")
            status, body = self.proxy(client_ip, codec.encode_request(self.codes))
        except (URLError, HTTPException, OSError, ValueError) as e:
            info("Error proxying GetBasicCommands to device:", e)
            return self.basic_fallback()
        if status != HTTPStatus.OK or not body:
            log("No usable proxy response; sending basic fallback")
            return self.basic_fallback()

        if body.startswith("xml="):
            body = codec.extract_xml(body) or body
        log("Response from device (proxy):", body)
        try:
            self.process_values(codec.decode(body))
        except Exception as e:
            info("Cannot process proxied device response:", repr(e))
        return body


class SyrRequestHandler(BaseHTTPRequestHandler):
    """Accepts GET and POST on any path ending in GetBasicCommands/GetAllCommands."""

    server_version = "SyrBridge/1.2"
    router = None

    def do_GET(self):  # noqa: N802
        self._handle_request()

    def do_POST(self):  # noqa: N802
        self._handle_request()

    def log_message(self, fmt, *args):
        log("[http]", self.address_string(), fmt % args)

    def _read_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            log("[http] Ignoring bad Content-Length", repr(self.headers.get("Content-Length")))
            return b""
        return self.rfile.read(length) if length > 0 else b""

    def _handle_request(self):
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/")
        body = self._read_body()
        client_ip = normalize_remote_address(self.client_address[0])
        log(f"[{self.command}:{self.server.server_port}] Request for {self.headers.get('Host', '')}{self.path}"
            f" from {client_ip}")

        if path.endswith("/GetBasicCommands"):
            self._xml(self.router.basic_commands(client_ip))
        elif path.endswith("/GetAllCommands"):
            envelope = codec.extract_xml(body, parsed.query)
            if envelope:
                log(envelope)
            self._xml(self.router.all_commands(envelope))
        else:
            self.send_error(HTTPStatus.NOT_FOUND)

    def _xml(self, text: str):
        raw = text.encode("utf-8")
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", CONTENT_TYPE)
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def make_server(router, host: str, port: int, ssl_context=None) -> ThreadingHTTPServer:
    """Bind a threaded server for the device polls, wrapped in TLS when a context is given."""
    handler = type("BoundSyrRequestHandler", (SyrRequestHandler,), {"router": router})
    server = ThreadingHTTPServer((host, port), handler)
    server.daemon_threads = True
    if ssl_context is not None:
        server.socket = ssl_context.wrap_socket(server.socket, server_side=True)
    return server
