""" Regeneration weekdays bit mask (device code RPW).

Bit n set means regeneration on that weekday, bit 0 = Monday ... bit 6 = Sunday.
HA exposes the field as a select, so every mask has a fixed display string.
"""
import re

NONE_TEXT = "(None)"
MASK_ALL = 0x7F

DAYS = (
    ("Monday", "Mon"),
    ("Tuesday", "Tue"),
    ("Wednesday", "Wed"),
    ("Thursday", "Thu"),
    ("Friday", "Fri"),
    ("Saturday", "Sat"),
    ("Sunday", "Sun"),
)
_BIT_BY_ABBR = {abbr: 1 << i for i, (_, abbr) in enumerate(DAYS)}
_ABBR_RE = re.compile(r"(Mon|Tue|Wed|Thu|Fri|Sat|Sun)")


def popcount(n: int) -> int:
    return bin(n & MASK_ALL).count("1")


def reverse7(n: int) -> int:
    """Reverse the lowest 7 bits, ignoring the rest."""
    return int(format(n & MASK_ALL, "07b")[::-1], 2)


def to_text(mask: int) -> str:
    """Render a mask, e.g. 0b11 -> "Every Monday & Tuesday", 0b10101 -> "Every Mon, Wed & Fri"."""
    mask = int(mask) & MASK_ALL
    if mask == 0:
        return NONE_TEXT
    full = popcount(mask) <= 2
    names = [full_name if full else abbr for i, (full_name, abbr) in enumerate(DAYS) if mask & (1 << i)]
    res = ", ".join(names)
    idx = res.rfind(", ")
    if idx >= 0:
        res = res[:idx] + " & " + res[idx + 2:]
    return "Every " + res


def from_text(text: str) -> int:
    """OR together the bits of every abbreviated weekday found in `text`."""
    mask = 0
    for m in _ABBR_RE.findall(text or ""):
        mask |= _BIT_BY_ABBR[m]
    return mask


def options() -> list:
    """All 128 display strings in select order.

    "(None)" first, then one bucket per number of selected days. Inside a
    bucket Monday sorts before Tuesday and so on, which is what counting the
    bit-reversed pattern downwards yields.
    """
    res = [NONE_TEXT]
    for ones in range(1, 8):
        for i in range(MASK_ALL, 0, -1):
            if popcount(i) == ones:
                res.append(to_text(reverse7(i)))
    return res
