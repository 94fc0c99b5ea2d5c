from collections import OrderedDict
from typing import Dict

from .exceptions import DecodeError, UpstreamDataError


class CompositeUid:
    """
    Packs several upstream values into one Address.uid and unpacks them again.

    Some councils need more than a property reference to look up bin days (the
    address text they echo back in a form, for example). Those values are
    joined with a delimiter when the address is created and validated when the
    uid comes back from the caller.

    Example:
        >>> codec = CompositeUid("udprn", "address_text", delimiter="|")
        >>> codec.encode(udprn="100000000001", address_text="1 Test Street")
        '100000000001|1 Test Street'
    """

    def __init__(self, *fields: str, delimiter: str = ";"):
        if not fields:
            raise ValueError("CompositeUid needs at least one field")
        self.fields = tuple(fields)
        self.delimiter = delimiter

    def encode(self, **values: str) -> str:
        parts = []
        for name in self.fields:
            value = values.get(name)
            if value is None or str(value) == "":
                raise UpstreamDataError(f"Cannot build uid: field '{name}' is empty")
            value = str(value)
            if self.delimiter in value:
                raise UpstreamDataError(f"Cannot build uid: field '{name}' contains '{self.delimiter}'")
            parts.append(value)
        return self.delimiter.join(parts)

    def decode(self, uid: str) -> Dict[str, str]:
        if not uid:
            raise DecodeError("Address uid is empty")
        parts = uid.split(self.delimiter)
        if len(parts) != len(self.fields):
            raise DecodeError(
                f"Address uid '{uid}' has {len(parts)} fields, expected {len(self.fields)} ({', '.join(self.fields)})"
            )
        decoded = OrderedDict(zip(self.fields, parts))
        for name, value in decoded.items():
            if not value:
                raise DecodeError(f"Address uid '{uid}' has an empty '{name}' field")
        return decoded
