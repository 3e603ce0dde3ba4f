"""
xsid request signature
======================

Reproduces the browser's ``x-statsig-id`` header bit for bit.

The verification token selects one SVG path group and a time scalar. The
group drives a simulated CSS animation frame (cubic-bezier easing, colour
interpolation, rotation matrix); every number in the rendered style is
re-encoded in a custom hex form and folded into a SHA-256 digest together
with the request method, path and a clock offset.

All arithmetic lives in small pure functions. Rounding is half away from
zero throughout.
"""

import base64
import hashlib
import math
import random
import re
import struct
import time

from ..core.exceptions import SigningError

EPOCH_OFFSET = 1682924400
ANIMATION_DURATION = 4096
BEZIER_ITERATIONS = 80
SNAP_EPSILON = 1e-7
HEX_EPSILON = 1e-12
MAX_HEX_DIGITS = 20
SALT = "obfiowerehiring"

_NON_DIGITS = re.compile(r"[^\d]+")
_NUMBER = re.compile(r"[\d.\-]+")


def round_half_away(value: float) -> float:
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return math.copysign(whole, value)


def round2(value: float) -> float:
    return round_half_away(value * 100.0) / 100.0


def remap(x: float, lo: float, hi: float, floor: bool) -> float:
    """Linear map of a 0..255 byte onto [lo, hi]; floored or rounded to 2 dp."""
    f = x * (hi - lo) / 255.0 + lo
    if floor:
        return float(math.floor(f))
    rounded = round2(f)
    return 0.0 if rounded == 0 else rounded


def cubic_bezier_eased(t: float, x1: float, y1: float, x2: float, y2: float) -> float:
    """
    Evaluate a CSS ``cubic-bezier(x1, y1, x2, y2)`` timing function at ``t``.

    The curve parameter is found by bisection on the x coordinate, then the
    y coordinate is returned.
    """

    def point(u: float) -> tuple[float, float]:
        omu = 1.0 - u
        b1 = 3.0 * omu * omu * u
        b2 = 3.0 * omu * u * u
        b3 = u * u * u
        return b1 * x1 + b2 * x2 + b3, b1 * y1 + b2 * y2 + b3

    lo, hi = 0.0, 1.0
    for _ in range(BEZIER_ITERATIONS):
        mid = 0.5 * (lo + hi)
        if point(mid)[0] < t:
            lo = mid
        else:
            hi = mid
    return point(0.5 * (lo + hi))[1]


def parse_svg_groups(svg: str) -> list[list[int]]:
    """Split an SVG path (after its 9-char ``M`` prefix) into integer groups on ``C``."""
    groups: list[list[int]] = []
    for part in svg[9:].split("C"):
        cleaned = _NON_DIGITS.sub(" ", part).strip()
        groups.append([int(n) for n in cleaned.split()] if cleaned else [0])
    return groups


def tohex(num: float) -> str:
    """
    Hex-encode a number rounded to 2 dp.

    Integer part in plain hex, fraction expanded in base 16 (at most 20
    digits, trailing zeros trimmed), sign kept as a leading ``-``.
    """
    rounded = round2(num)
    if rounded == 0:
        return "0"

    sign = "-" if rounded < 0 else ""
    absval = abs(rounded)
    intpart = math.floor(absval)
    frac = absval - intpart
    if frac == 0:
        return f"{sign}{intpart:x}"

    digits = []
    for _ in range(MAX_HEX_DIGITS):
        frac *= 16.0
        digit = math.floor(frac + HEX_EPSILON)
        digits.append(f"{digit:x}")
        frac -= digit
        if abs(frac) < HEX_EPSILON:
            break

    frac_str = "".join(digits).rstrip("0")
    if not frac_str:
        return f"{sign}{intpart:x}"
    return f"{sign}{intpart:x}.{frac_str}"


def _is_zero(value: float) -> bool:
    return abs(value) < SNAP_EPSILON


def _is_integer(value: float) -> bool:
    return abs(value - round_half_away(value)) < SNAP_EPSILON


def _snap_int(value: float) -> str:
    return str(int(round_half_away(value)))


def simulate_style(values: list[int], c: int) -> tuple[str, str]:
    """
    Render the animation frame at time scalar ``c``.

    Returns ``(color, transform)`` as the browser serialises them, e.g.
    ``("rgb(12, 34, 56)", "matrix(1, 0, 0, 1, 0, 0)")``.
    """
    if len(values) < 11:
        raise SigningError(
            "SVG path group too short for a style frame",
            details={"length": len(values)},
            recoverable=False,
        )

    t = ((c // 10) * 10) / ANIMATION_DURATION
    cp = [remap(v, 0.0 if i % 2 == 0 else -1.0, 1.0, False) for i, v in enumerate(values[7:])]
    eased = cubic_bezier_eased(t, cp[0], cp[1], cp[2], cp[3])

    start = values[0:3]
    end = values[3:6]
    r, g, b = (int(round_half_away(s + (e - s) * eased)) for s, e in zip(start, end))
    color = f"rgb({r}, {g}, {b})"

    end_angle = remap(values[6], 60.0, 360.0, True)
    rad = end_angle * eased * math.pi / 180.0
    cosv = math.cos(rad)
    sinv = math.sin(rad)

    if _is_zero(cosv):
        a = d = "0"
    elif _is_integer(cosv):
        a = d = _snap_int(cosv)
    else:
        a = d = f"{cosv:.6f}"

    if _is_zero(sinv):
        bval = cval = "0"
    elif _is_integer(sinv):
        bval, cval = _snap_int(sinv), _snap_int(-sinv)
    else:
        bval, cval = f"{sinv:.7f}", f"{-sinv:.7f}"

    return color, f"matrix({a}, {bval}, {cval}, {d}, 0, 0)"


def derive_animation_key(token: bytes, svg: str, offsets: list[int]) -> str:
    """Compute the opaque string folded into the signature digest."""
    if len(offsets) < 4:
        raise SigningError(
            "At least four token offsets are required",
            details={"offsets": len(offsets)},
            recoverable=False,
        )
    try:
        idx = token[offsets[0]] % 16
        c = (token[offsets[1]] % 16) * (token[offsets[2]] % 16) * (token[offsets[3]] % 16)
    except IndexError as e:
        raise SigningError("Token offset out of range", cause=e, recoverable=False)

    groups = parse_svg_groups(svg)
    if idx >= len(groups):
        raise SigningError(
            "SVG path group index out of range",
            details={"index": idx, "groups": len(groups)},
            recoverable=False,
        )

    color, transform = simulate_style(groups[idx], c)
    converted = []
    for literal in _NUMBER.findall(color + transform):
        try:
            converted.append(tohex(float(literal)))
        except ValueError:
            converted.append(tohex(0.0))
    return "".join(converted).replace(".", "").replace("-", "")


def generate_sign(
    path: str,
    method: str,
    verification_token: str,
    svg: str,
    offsets: list[int],
    time_n: int | None = None,
    random_float: float | None = None,
) -> str:
    """
    Build the ``x-statsig-id`` header value for one request.

    ``time_n`` and ``random_float`` are injectable for deterministic tests;
    by default they come from the clock and ``random``.
    """
    if time_n is None:
        time_n = (int(time.time()) - EPOCH_OFFSET) & 0xFFFFFFFF
    if random_float is None:
        random_float = random.random()

    token = base64.b64decode(verification_token)
    key = derive_animation_key(token, svg, offsets)

    message = f"{method}!{path}!{time_n}{SALT}{key}"
    digest = hashlib.sha256(message.encode("utf-8")).digest()[:16]

    prefix = math.floor(random_float * 256) & 0xFF
    assembled = bytearray([prefix])
    assembled += token
    assembled += struct.pack("<I", time_n)
    assembled += digest
    assembled.append(3)

    for i in range(1, len(assembled)):
        assembled[i] ^= prefix

    return base64.b64encode(bytes(assembled)).decode("ascii").rstrip("=")
