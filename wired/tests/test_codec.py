import pytest

from wired.protocol.codec import REPLACEMENT_CHARACTER, DecodeError, Message, Preencoded, decode, encode
from wired.protocol.transactions import ClientInfo, SetIdle, SendLogin

_R = REPLACEMENT_CHARACTER


@pytest.mark.parametrize(
    "fields",
    [
        {},
        {"wired.user.nick": "Triforce"},
        {"wired.user.status": "a < b & c > d", "wired.user.nick": "\"quoted\" 'nick'"},
        {"wired.chat.say": "line one\r\nline two"},
        {"wired.user.nick": "Ünïcødé ☃"},
        {"wired.user.status": ""},
    ],
)
def test_encode_decode_round_trip(fields):
    message = decode(encode("wired.test", fields))

    assert message.name == "wired.test"
    assert message.as_dict() == fields


def test_encode_envelope_and_terminator():
    data = encode("wired.ping")

    assert data.startswith(b'<?xml version="1.0" encoding="UTF-8"?>')
    assert b'<p7:message name="wired.ping" xmlns:p7="http://www.zankasoftware.com/P7/Message">' in data
    assert data.endswith(b"</p7:message>\r\n")


def test_encode_keeps_field_order():
    data = encode("wired.test", [("b", "2"), ("a", "1")])

    assert data.index(b'name="b"') < data.index(b'name="a"')
    assert decode(data).fields == (("b", "2"), ("a", "1"))


def test_preencoded_values_are_written_verbatim():
    data = encode("p7.compatibility_check.specification", {"spec": Preencoded("&lt;p7:protocol/&gt;")})

    assert b"&lt;p7:protocol/&gt;" in data
    assert b"&amp;lt;" not in data
    assert decode(data).get("spec") == "<p7:protocol/>"


def test_plain_values_are_escaped():
    data = encode("wired.test", {"value": "<b>&</b>"})

    assert b"&lt;b&gt;&amp;&lt;/b&gt;" in data


def test_decode_tolerates_leading_newline_and_trailing_cr():
    frame = b"\n" + encode("wired.send_ping").rstrip(b"\n")

    assert decode(frame).name == "wired.send_ping"


def test_decode_reads_unprefixed_document():
    message = decode(b'<message name="wired.login"><field name="wired.user.id">42</field></message>\r')

    assert message.name == "wired.login"
    assert message.get("wired.user.id") == "42"


@pytest.mark.parametrize(
    "frame",
    [
        b"",
        b"\r",
        b"<p7:message name=",
        b"not xml at all\r",
        b'<p7:envelope xmlns:p7="urn:x" name="x"/>',
        b'<p7:message xmlns:p7="urn:x"/>',
        b'<p7:message xmlns:p7="urn:x" name="x"><p7:field>1</p7:field></p7:message>',
    ],
)
def test_decode_rejects_malformed_frames(frame):
    with pytest.raises(DecodeError):
        decode(frame)


def test_message_get_last_occurrence_wins():
    message = Message("wired.test", (("a", "1"), ("a", "2")))

    assert message.get("a") == "2"
    assert message.get("missing") is None
    assert message.get("missing", "x") == "x"
    assert "a" in message
    assert "b" not in message


def test_transaction_records_map_onto_wire_fields():
    login = SendLogin(login="guest", password="da39a3ee5e6b4b0d3255bfef95601890afd80709")
    info = ClientInfo(
        application_name="Wired Client",
        application_version="2.1",
        application_build="306",
        os_name="Mac OS X",
        os_version="10.9.2",
        arch="x86_64",
    )

    assert login.NAME == "wired.send_login"
    assert dict(login.fields()) == {
        "wired.user.login": "guest",
        "wired.user.password": "da39a3ee5e6b4b0d3255bfef95601890afd80709",
    }
    assert dict(info.fields())["wired.info.supports_rsrc"] == "false"
    assert dict(SetIdle().fields()) == {"wired.user.idle": "YES"}


@pytest.mark.parametrize(
    "fields, expected",
    [
        ({"wired.user.status": "bell" + chr(0x07)}, {"wired.user.status": "bell" + _R}),
        ({"wired.user.status": "nul" + chr(0x00)}, {"wired.user.status": "nul" + _R}),
        ({"wired.chat.say": chr(0x1B) + "[1mbold"}, {"wired.chat.say": _R + "[1mbold"}),
        ({"wired.user.nick": chr(0xD800)}, {"wired.user.nick": _R}),
        ({"wired.user.nick": "split " + chr(0xD83D) + chr(0xDE00)}, {"wired.user.nick": "split " + _R + _R}),
        ({"wired.user.nick": chr(0x1F600)}, {"wired.user.nick": chr(0x1F600)}),
        ({"wired.user.nick": chr(0xFFFE) + chr(0xFFFF)}, {"wired.user.nick": _R + _R}),
        ({"bad" + chr(0x01) + "name": "v"}, {"bad" + _R + "name": "v"}),
        ({"wired.chat.say": "tab\tnewline\ncr\r"}, {"wired.chat.say": "tab\tnewline\ncr\r"}),
    ],
)
def test_characters_xml_cannot_carry_become_replacement_character(fields, expected):
    message = decode(encode("wired.test", fields))

    assert message.as_dict() == expected


def test_transaction_name_with_control_character_still_encodes():
    assert decode(encode("wired." + chr(0x07) + "test")).name == "wired." + REPLACEMENT_CHARACTER + "test"


def _xml_char(code: int) -> bool:
    return (
        code in (0x09, 0x0A, 0x0D)
        or 0x20 <= code <= 0xD7FF
        or 0xE000 <= code <= 0xFFFD
        or 0x10000 <= code <= 0x10FFFF
    )


@pytest.mark.parametrize("start", range(0, 0x110000, 0x8000))
def test_round_trip_over_code_point_range(start):
    codes = range(start, min(start + 0x8000, 0x110000), 7)
    chunk = "".join(chr(code) for code in codes)
    expected = "".join(chr(code) if _xml_char(code) else REPLACEMENT_CHARACTER for code in codes)

    message = decode(encode("wired.test", {"wired.chat.say": chunk, "wired.user.nick": chunk[:64]}))

    assert message.get("wired.chat.say") == expected
    assert message.get("wired.user.nick") == expected[:64]
