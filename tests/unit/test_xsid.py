"""
Tests for the x-statsig-id signature
"""

import base64
import struct

import pytest

from reverse_api.core.exceptions import SigningError
from reverse_api.signing.xsid import (
    cubic_bezier_eased,
    derive_animation_key,
    generate_sign,
    parse_svg_groups,
    remap,
    round_half_away,
    simulate_style,
    tohex,
)

STYLE_VALUES = [10, 20, 30, 200, 100, 50, 128, 100, 50, 200, 150]
TOKEN = bytes(range(48))
TOKEN_B64 = base64.b64encode(TOKEN).decode()
CONVERSATION_PATH = "/rest/app-chat/conversations/new"


def make_svg(*groups: list[int]) -> str:
    return "M00000000" + "C".join(" ".join(str(v) for v in group) for group in groups)


class TestRounding:
    def test_half_away_from_zero(self):
        assert round_half_away(2.5) == 3
        assert round_half_away(-2.5) == -3
        assert round_half_away(0.49) == 0
        assert round_half_away(-1.2) == -1

    def test_remap(self):
        assert remap(0, 60.0, 360.0, True) == 60.0
        assert remap(255, 60.0, 360.0, True) == 360.0
        assert remap(0, -1.0, 1.0, False) == -1.0
        assert remap(255, 0.0, 1.0, False) == 1.0


class TestTohex:
    def test_zero(self):
        assert tohex(0) == "0"
        assert tohex(0.001) == "0"

    def test_negative(self):
        assert tohex(-2.5).startswith("-")
        assert tohex(-2.5) == "-2.8"

    def test_integers_have_no_point(self):
        assert tohex(255) == "ff"
        assert tohex(16.0) == "10"
        assert "." not in tohex(3.0)

    def test_fraction(self):
        assert tohex(0.5) == "0.8"
        assert tohex(1.25) == "1.4"

    def test_trailing_zeros_trimmed(self):
        assert not tohex(0.75).endswith("0")
        assert tohex(0.75) == "0.c"

    def test_repeating_fraction_bounded(self):
        encoded = tohex(0.1)

        assert encoded.startswith("0.1999")
        assert len(encoded.split(".")[1]) <= 20

    @pytest.mark.parametrize(
        "value,expected",
        [
            (-1.5, "-1.8"),
            (0.1, "0.1999999999999a"),
            (2.345, "2.599999999999a"),
            (-0.07, "-0.11eb851eb851ec"),
            (12.34, "c.570a3d70a3d7"),
        ],
    )
    def test_known_values(self, value, expected):
        assert tohex(value) == expected


class TestBezier:
    @pytest.mark.parametrize("controls", [(0.25, 0.1, 0.25, 1.0), (0.0, -1.0, 1.0, 1.0)])
    def test_endpoints_fixed(self, controls):
        assert cubic_bezier_eased(0.0, *controls) == pytest.approx(0.0, abs=1e-9)
        assert cubic_bezier_eased(1.0, *controls) == pytest.approx(1.0, abs=1e-9)

    def test_linear_curve(self):
        assert cubic_bezier_eased(0.5, 0.0, 0.0, 1.0, 1.0) == pytest.approx(0.5, abs=1e-6)


class TestSimulateStyle:
    def test_zero_time_is_start_frame(self):
        color, transform = simulate_style(STYLE_VALUES, 0)

        assert color == "rgb(10, 20, 30)"
        assert transform == "matrix(1, 0, 0, 1, 0, 0)"

    def test_time_below_ten_snaps_to_zero(self):
        assert simulate_style(STYLE_VALUES, 9) == simulate_style(STYLE_VALUES, 0)

    def test_midway_frame(self):
        color, transform = simulate_style(STYLE_VALUES, 2048)

        assert color.startswith("rgb(")
        assert transform.startswith("matrix(")
        assert transform.endswith(", 0, 0)")

    def test_known_frame(self):
        # eased value dips below zero, so the red channel overshoots the start
        assert simulate_style(STYLE_VALUES, 210) == (
            "rgb(-4, 14, 29)",
            "matrix(0.965133, -0.2617586, 0.2617586, 0.965133, 0, 0)",
        )

    def test_short_group(self):
        with pytest.raises(SigningError):
            simulate_style([1, 2, 3], 10)


class TestSvgGroups:
    def test_parse(self):
        assert parse_svg_groups("M10,10 0 1 2 3 C4,5,6") == [[1, 2, 3], [4, 5, 6]]

    def test_empty_group(self):
        assert parse_svg_groups(make_svg([1], [])) == [[1], [0]]


class TestKnownSignatures:
    def test_animation_key_start_frame(self):
        # token[16] % 16 == 0 gives c == 0
        assert derive_animation_key(TOKEN, make_svg(STYLE_VALUES), [0, 16, 2, 3]) == "a141e100100"

    def test_animation_key_midway(self):
        key = derive_animation_key(TOKEN, make_svg(STYLE_VALUES), [0, 5, 6, 7])

        assert key == "4e1d0f851eb851eb850428f5c28f5c290428f5c28f5c290f851eb851eb8500"

    def test_header_without_mask(self):
        signature = generate_sign(
            CONVERSATION_PATH,
            "POST",
            TOKEN_B64,
            make_svg(STYLE_VALUES),
            [0, 16, 2, 3],
            time_n=123456,
            random_float=0.0,
        )

        assert signature == (
            "AAABAgMEBQYHCAkKCwwNDg8QERITFBUWFxgZGhscHR4fICEiIyQlJicoKSorLC0uL0Di"
            "AQDd2HGav2XyEz2osBnnN/pYAw"
        )

    def test_header_masked(self):
        signature = generate_sign(
            CONVERSATION_PATH,
            "POST",
            TOKEN_B64,
            make_svg(STYLE_VALUES),
            [0, 5, 6, 7],
            time_n=123456,
            random_float=0.5,
        )

        assert signature == (
            "gICBgoOEhYaHiImKi4yNjo+QkZKTlJWWl5iZmpucnZ6foKGio6SlpqeoqaqrrK2ur8Bi"
            "gYDrWTZunrWazSomjxEeFKe8gw"
        )


class TestGenerateSign:
    def test_deterministic(self):
        svg = make_svg(STYLE_VALUES)
        kwargs = dict(time_n=123456, random_float=0.5)

        first = generate_sign("/rest/app-chat/conversations/new", "POST", TOKEN_B64, svg,
                              [0, 1, 2, 3], **kwargs)
        second = generate_sign("/rest/app-chat/conversations/new", "POST", TOKEN_B64, svg,
                               [0, 1, 2, 3], **kwargs)

        assert first == second
        assert "=" not in first

    def test_layout(self):
        signature = generate_sign("/p", "GET", TOKEN_B64, make_svg(STYLE_VALUES), [0, 1, 2, 3],
                                  time_n=99, random_float=0.5)
        raw = base64.b64decode(signature + "=" * (-len(signature) % 4))
        prefix = raw[0]
        body = bytes(b ^ prefix for b in raw[1:])

        assert prefix == 128
        assert len(raw) == 1 + len(TOKEN) + 4 + 16 + 1
        assert body[: len(TOKEN)] == TOKEN
        assert struct.unpack("<I", body[len(TOKEN): len(TOKEN) + 4])[0] == 99
        assert body[-1] == 3

    def test_inputs_change_signature(self):
        svg = make_svg(STYLE_VALUES)
        base = generate_sign("/p", "GET", TOKEN_B64, svg, [0, 1, 2, 3],
                             time_n=1, random_float=0.0)

        assert base != generate_sign("/p", "POST", TOKEN_B64, svg, [0, 1, 2, 3],
                                     time_n=1, random_float=0.0)
        assert base != generate_sign("/p", "GET", TOKEN_B64, svg, [0, 1, 2, 3],
                                     time_n=2, random_float=0.0)

    def test_defaults_use_clock(self):
        signature = generate_sign("/p", "GET", TOKEN_B64, make_svg(STYLE_VALUES), [0, 1, 2, 3])

        assert signature

    def test_too_few_offsets(self):
        with pytest.raises(SigningError):
            derive_animation_key(TOKEN, make_svg(STYLE_VALUES), [0, 1, 2])

    def test_offset_out_of_range(self):
        with pytest.raises(SigningError):
            derive_animation_key(TOKEN, make_svg(STYLE_VALUES), [0, 1, 2, 500])

    def test_group_index_out_of_range(self):
        # token[15] % 16 selects group 15, which does not exist
        with pytest.raises(SigningError):
            derive_animation_key(TOKEN, make_svg(STYLE_VALUES), [15, 1, 2, 3])
