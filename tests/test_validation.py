import pytest

from surelink.core.errors import InvalidMessageError, InvalidPositionError
from surelink.services.validation import (
    display_name_for,
    parse_location,
    sanitize_message,
    sanitize_string,
    validate_message,
)


def test_sanitize_string_strips_tags_and_escapes():
    assert sanitize_string("<script>alert(1)</script>hi") == "alert(1)hi"
    assert sanitize_string(' a & "b" / c ') == "a &amp; &quot;b&quot; &#x2F; c"
    assert sanitize_string(42) == ""


def test_display_name_falls_back_to_connection_prefix():
    assert display_name_for("abcdefgh", None) == "abcde"
    assert display_name_for("abcdefgh", "<i></i>") == "abcde"
    assert display_name_for("abcdefgh", "x" * 80) == "x" * 50


def test_display_name_is_truncated_before_escaping():
    assert display_name_for("abcdefgh", "a" * 49 + "&") == "a" * 49 + "&amp;"
    assert display_name_for("abcdefgh", "a" * 50 + "&") == "a" * 50
    assert display_name_for("abcdefgh", "x/" * 30) == "x&#x2F;" * 25


def test_parse_location_accepts_numbers_only():
    pos, nick = parse_location({"lat": 35, "lng": 139.5, "nickname": "n"})
    assert (pos.latitude, pos.longitude, nick) == (35.0, 139.5, "n")

    with pytest.raises(InvalidPositionError):
        parse_location({"lat": "35", "lng": 139})
    with pytest.raises(InvalidPositionError):
        parse_location([35, 139])


def test_valid_message_is_sanitized():
    msg = validate_message({"user": "amy", "text": "a<b>b</b>", "id": 7})
    assert sanitize_message(msg) == {"user": "amy", "text": "ab", "id": 7}


@pytest.mark.parametrize("payload", [
    {"user": "", "text": "hi"},
    {"user": "amy", "text": "   "},
    {"user": "amy", "text": "x" * 501},
    {"user": "y" * 51, "text": "hi"},
    {"user": "amy", "text": "this is SPAM"},
    "not a dict",
])
def test_invalid_messages(payload):
    with pytest.raises(InvalidMessageError):
        validate_message(payload)
