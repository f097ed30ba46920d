"""P7 message codec, transaction records and the specification catalog."""

from wired.protocol.catalog import CatalogError, SpecificationCatalog
from wired.protocol.codec import DecodeError, Message, Preencoded, decode, encode
from wired.protocol.transactions import Transaction

__all__ = [
    "CatalogError",
    "SpecificationCatalog",
    "DecodeError",
    "Message",
    "Preencoded",
    "Transaction",
    "decode",
    "encode",
]
