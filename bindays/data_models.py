from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Tuple, Dict, Any


class ContainerColour(Enum):
    """Colours a council uses to describe its containers."""
    RED = "Red"
    GREEN = "Green"
    LIGHT_GREEN = "Light Green"
    BLUE = "Blue"
    LIGHT_BLUE = "Light Blue"
    BLACK = "Black"
    GREY = "Grey"
    YELLOW = "Yellow"
    ORANGE = "Orange"
    PURPLE = "Purple"
    PINK = "Pink"
    BROWN = "Brown"
    WHITE = "White"


class ContainerType(Enum):
    BIN = "Bin"
    BOX = "Box"
    BAG = "Bag"
    CADDY = "Caddy"
    SACK = "Sack"
    CONTAINER = "Container"


@dataclass(frozen=True)
class Address:
    """A property returned by the address search step."""
    property: Optional[str] = None
    street: Optional[str] = None
    town: Optional[str] = None
    postcode: Optional[str] = None
    uid: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "property": self.property,
            "street": self.street,
            "town": self.town,
            "postcode": self.postcode,
            "uid": self.uid,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Address":
        return cls(
            property=data.get("property"),
            street=data.get("street"),
            town=data.get("town"),
            postcode=data.get("postcode"),
            uid=data.get("uid"),
        )


@dataclass(frozen=True)
class Container:
    """
    A bin, box, bag or caddy a council collects.

    Keys are the substrings looked for (case-insensitively) in the labels the
    upstream site uses; one label may match several containers.
    """
    name: str
    colour: ContainerColour
    keys: Tuple[str, ...]
    type: Optional[ContainerType] = None

    def __post_init__(self):
        # Always a tuple, containers must stay hashable
        object.__setattr__(self, "keys", tuple(self.keys))
        if not self.keys:
            raise ValueError(f"Container '{self.name}' must have at least one key")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "colour": self.colour.value,
            "type": self.type.value if self.type else None,
            "keys": list(self.keys),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Container":
        raw_type = data.get("type")
        return cls(
            name=data["name"],
            colour=ContainerColour(data["colour"]),
            keys=tuple(data["keys"]),
            type=ContainerType(raw_type) if raw_type else None,
        )


@dataclass(frozen=True)
class CollectionDay:
    """A date paired with the containers collected on it for one address."""
    date: date
    address: Address
    containers: Tuple[Container, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "containers", tuple(self.containers))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "address": self.address.as_dict(),
            "bins": [container.as_dict() for container in self.containers],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CollectionDay":
        return cls(
            date=date.fromisoformat(data["date"]),
            address=Address.from_dict(data["address"]),
            containers=tuple(Container.from_dict(item) for item in data.get("bins", [])),
        )
