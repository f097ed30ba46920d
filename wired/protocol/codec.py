"""P7 message envelope encoding and decoding.

A P7 message is a small XML document::

    <?xml version="1.0" encoding="UTF-8"?>
    <p7:message name="wired.send_ping" xmlns:p7="http://www.zankasoftware.com/P7/Message">
      <p7:field name="...">value</p7:field>
    </p7:message>

On the wire every document is followed by a carriage return (outbound we send
``\\r\\n``). The delimiter is not part of the XML and is stripped before decoding.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional, Tuple, Union
from xml.sax.saxutils import escape, quoteattr

P7_NAMESPACE = "http://www.zankasoftware.com/P7/Message"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
FRAME_TERMINATOR = b"\r\n"

_TEXT_ENTITIES = {"\r": "&#13;"}

# Code points outside the XML 1.0 Char production (controls, lone surrogates, U+FFFE/U+FFFF).
_XML_ILLEGAL = re.compile("[^\t\n\r\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")
REPLACEMENT_CHARACTER = "\ufffd"

FieldPairs = Tuple[Tuple[str, str], ...]
Fields = Union[Mapping[str, str], Iterable[Tuple[str, str]], None]


class DecodeError(ValueError):
    """Raised when an inbound frame is not a well-formed P7 message."""


class Preencoded(str):
    """A field value that is already XML-escaped and must be written verbatim."""

    __slots__ = ()


@dataclass(frozen=True)
class Message:
    """A decoded transaction: its name plus the fields in arrival order."""

    name: str
    fields: FieldPairs = field(default_factory=tuple)

    def get(self, field_name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the value of ``field_name``; the last occurrence wins."""

        value = default
        for name, candidate in self.fields:
            if name == field_name:
                value = candidate
        return value

    def __contains__(self, field_name: object) -> bool:
        return any(name == field_name for name, _ in self.fields)

    def as_dict(self) -> dict[str, str]:
        return dict(self.fields)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def decode(frame: bytes) -> Message:
    """Parse one framed P7 document into a :class:`Message`."""

    data = frame.strip()
    if not data:
        raise DecodeError("empty frame")
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise DecodeError(f"malformed XML: {exc}") from exc

    if _local_name(root.tag) != "message":
        raise DecodeError(f"unexpected root element {root.tag!r}")
    name = root.get("name")
    if not name:
        raise DecodeError("message has no name attribute")

    pairs: list[tuple[str, str]] = []
    for child in root:
        if _local_name(child.tag) != "field":
            continue
        field_name = child.get("name")
        if not field_name:
            raise DecodeError(f"{name}: field without a name attribute")
        pairs.append((field_name, child.text or ""))
    return Message(name=name, fields=tuple(pairs))


def _iter_fields(fields: Fields) -> Iterator[tuple[str, str]]:
    if fields is None:
        return iter(())
    if isinstance(fields, Mapping):
        return iter(fields.items())
    return iter(fields)


def sanitize(text: str) -> str:
    """Replace characters XML 1.0 cannot carry with U+FFFD."""

    return _XML_ILLEGAL.sub(REPLACEMENT_CHARACTER, text)


def _field_text(value: str) -> str:
    if isinstance(value, Preencoded):
        return str(value)
    return escape(sanitize(str(value)), _TEXT_ENTITIES)


def encode(transaction: str, fields: Fields = None) -> bytes:
    """Serialize a transaction into a delimited P7 document.

    Plain string values are escaped; :class:`Preencoded` values are inserted
    as-is so large documents are only escaped once. Characters XML cannot
    represent are replaced with U+FFFD, so encoding never fails.
    """

    parts = [
        XML_DECLARATION,
        f'<p7:message name={quoteattr(sanitize(transaction))} xmlns:p7="{P7_NAMESPACE}">',
    ]
    for name, value in _iter_fields(fields):
        parts.append(f"<p7:field name={quoteattr(sanitize(str(name)))}>{_field_text(value)}</p7:field>")
    parts.append("</p7:message>")
    return "".join(parts).encode("utf-8", errors="replace") + FRAME_TERMINATOR


__all__ = [
    "DecodeError",
    "Message",
    "Preencoded",
    "P7_NAMESPACE",
    "REPLACEMENT_CHARACTER",
    "FRAME_TERMINATOR",
    "decode",
    "encode",
    "sanitize",
]
