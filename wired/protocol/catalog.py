"""Specification documents sent during the P7 compatibility check."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping
from xml.sax.saxutils import escape

from wired.protocol.codec import Preencoded

LOGGER = logging.getLogger(__name__)

SPEC_FILENAME = "WiredSpec_{version}.xml"

_DOCUMENTATION = re.compile(r"\s*<p7:documentation\b[^>]*>.*?</p7:documentation>", re.DOTALL)
_EMPTY = Preencoded("")


class CatalogError(RuntimeError):
    """Raised when a required specification document cannot be loaded."""


def encode_document(text: str, *, strip_documentation: bool = True) -> Preencoded:
    """Strip documentation (optionally) and escape the document as field text."""

    if strip_documentation:
        text = _DOCUMENTATION.sub("", text)
    return Preencoded(escape(text.strip(), {"\r": "&#13;"}))


class SpecificationCatalog(Mapping[str, Preencoded]):
    """Immutable mapping of protocol version to encoded specification."""

    def __init__(self, documents: Mapping[str, str] | None = None) -> None:
        encoded = {
            version: value if isinstance(value, Preencoded) else encode_document(value, strip_documentation=False)
            for version, value in (documents or {}).items()
        }
        self._documents: Mapping[str, Preencoded] = MappingProxyType(encoded)

    @classmethod
    def from_directory(
        cls,
        directory: Path,
        versions: Iterable[str],
        *,
        strip_documentation: bool = True,
    ) -> SpecificationCatalog:
        """Load ``WiredSpec_<version>.xml`` for every version or fail."""

        documents: dict[str, Preencoded] = {}
        for version in versions:
            path = Path(directory) / SPEC_FILENAME.format(version=version)
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise CatalogError(f"Error loading Wired specification {path}: {exc}") from exc
            documents[version] = encode_document(text, strip_documentation=strip_documentation)
            LOGGER.debug("Loaded specification %s (%d bytes encoded)", version, len(documents[version]))
        LOGGER.info("Loaded %d Wired specification(s) from %s", len(documents), directory)
        return cls(documents)

    def lookup(self, version: str | None) -> Preencoded:
        """Return the document for ``version``, or an empty document when unknown."""

        if version is None:
            return _EMPTY
        return self._documents.get(version, _EMPTY)

    def __getitem__(self, version: str) -> Preencoded:
        return self._documents[version]

    def __iter__(self) -> Iterator[str]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __repr__(self) -> str:
        return f"SpecificationCatalog(versions={sorted(self._documents)!r})"
