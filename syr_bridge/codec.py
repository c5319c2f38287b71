""" SYR Connect command-code envelope codec.

Envelope layout (both directions):
  <?xml version="1.0" encoding="utf-8"?><sc version="1.0"><d>
    <c n="getSRN" v=""/> ...
  </d></sc>

- Request form: `v=""` asks the device for that property.
- Response/command form: `v` carries the value. A `set` code tells the device
  to apply a new value on its next internal step.
"""
import xml.etree.ElementTree as ET
from urllib.parse import parse_qs, unquote_plus
from xml.sax.saxutils import escape

from .errors import CommandParseError

XML_START = '<?xml version="1.0" encoding="utf-8"?><sc version="1.0"><d>'
XML_END = '</d></sc>'

BASIC_CODES = ("getSRN", "getVER", "getFIR", "getTYP", "getCNA", "getIPA")
STATUS_CODES = (
    "getSV1", "getRPD", "getFLO", "getLAR", "getTOR", "getRG1", "getCS1",
    "getRES", "getSS1", "getSTA", "getCOF", "getRTH", "getRTM", "getRPW",
)
# Requested from every device; models without leakage protection simply answer them empty
LEAKAGE_CODES = ("getAB", "getCEL")

_ATTR_ENTITIES = {'"': "&quot;"}


def all_codes(extra_properties=()) -> tuple:
    """Full code superset in request order, user-configured extras last."""
    codes = BASIC_CODES + STATUS_CODES + LEAKAGE_CODES + tuple("get" + p for p in extra_properties)
    return tuple(dict.fromkeys(codes))


def setter_code(code: str) -> str:
    return "set" + code[3:] if code.startswith("get") else code


def decode(envelope) -> dict:
    """Parse an envelope into a {code: value} map.

    Raises CommandParseError when the document is not well-formed or has no
    sc/d/c entries.
    """
    if isinstance(envelope, (bytes, bytearray)):
        envelope = bytes(envelope).decode("utf-8", "replace")
    try:
        root = ET.fromstring(envelope.strip())
    except ET.ParseError as e:
        raise CommandParseError(f"malformed envelope: {e}") from e
    if root.tag != "sc":
        raise CommandParseError(f"unexpected root element <{root.tag}>")
    d = root.find("d")
    if d is None:
        raise CommandParseError("envelope has no <d> element")
    entries = d.findall("c")
    if not entries:
        raise CommandParseError("envelope has no <c> entries")

    values = {}
    for c in entries:
        code = c.get("n")
        if not code:
            continue
        values[code] = c.get("v", "")
    return values


def encode(entries) -> str:
    """Render (code, value) pairs as an envelope, preserving their order."""
    body = "".join(
        f'<c n="{escape(str(code), _ATTR_ENTITIES)}" v="{escape(str(value), _ATTR_ENTITIES)}"/>'
        for code, value in entries
    )
    return XML_START + body + XML_END


def encode_request(codes) -> str:
    return encode((code, "") for code in codes)


def encode_response(codes, pending=()) -> str:
    """Build the reply to a poll from the drained pending writes.

    Each code whose set-form has a pending write is replaced by that write,
    the rest are answered as empty get placeholders ("no change"). Writes for
    codes outside `codes` are appended in queue order so none is dropped.
    """
    remaining = dict(pending)
    entries = []
    for code in codes:
        setter = setter_code(code)
        if setter in remaining:
            entries.append((setter, remaining.pop(setter)))
        else:
            entries.append((code, ""))
    entries.extend(remaining.items())
    return encode(entries)


def _strip_form_prefix(text: str) -> str:
    if text.startswith("xml="):
        return unquote_plus(text[4:])
    return text


def extract_xml(body=b"", query=""):
    """Pull the envelope out of a poll request.

    Devices post `application/x-www-form-urlencoded` with a single `xml` field;
    raw XML bodies and an `xml` query parameter are accepted too.
    Returns None when the request carries no envelope.
    """
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", "replace")
    text = (body or "").strip()
    if text:
        if text.startswith("<"):
            return text
        form = parse_qs(text, keep_blank_values=True)
        if form.get("xml"):
            return form["xml"][0]
        return _strip_form_prefix(text) or None
    if query:
        q = parse_qs(query, keep_blank_values=True)
        if q.get("xml") and q["xml"][0]:
            return q["xml"][0]
    return None
