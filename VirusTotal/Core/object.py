from datetime import datetime, timezone
from decimal import Decimal
import re
from typing import Any, Callable, Dict, Final, List, Optional, TypeVar

from .errors import (
    DecodeError,
    NotFound,
    ShapeAssertionError,
    TypeMismatch,
    WrongType,
)
from .types import AttributeMap, AttributeValue, Links

V = TypeVar("V")

_INDEX: Final = re.compile(r"\[(\d+)\]")


def _asString(name: str, value: AttributeValue, kind: str) -> str:
    if isinstance(value, str):
        return value
    raise WrongType(name, "string", kind)


def _asInt(name: str, value: AttributeValue, kind: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise WrongType(name, "integer", kind)


def _asFloat(name: str, value: AttributeValue, kind: str) -> float:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return float(value)
    raise WrongType(name, "number", kind)


def _asBool(name: str, value: AttributeValue, kind: str) -> bool:
    if isinstance(value, bool):
        return value
    raise WrongType(name, "boolean", kind)


def _asTime(name: str, value: AttributeValue, kind: str) -> datetime:
    # Times travel as integer epoch seconds.
    seconds: Final = _asInt(name, value, kind)
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, ValueError, OSError) as err:
        raise WrongType(name, "time", kind) from err


def _asStringList(name: str, value: AttributeValue, kind: str) -> List[str]:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise WrongType(name, "list of strings", kind)


def _must(getter: Callable[[str], V], name: str) -> V:
    try:
        return getter(name)
    except (NotFound, WrongType) as err:
        raise ShapeAssertionError(str(err)) from err


def _decodeMap(data: Any, path: str) -> AttributeMap:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DecodeError("expecting an object", path)
    return dict(data)


class Relationship:
    """Objects related to another object through a named relationship.

    When isOneToOne is true relatedObjects holds one object at most.
    """

    def __init__(
        self,
        isOneToOne: bool,
        relatedObjects: Optional[List["Object"]] = None,
        links: Optional[Links] = None,
    ) -> None:
        self.isOneToOne = isOneToOne
        self.relatedObjects: List["Object"] = relatedObjects or []
        self.links = links or Links()

    @classmethod
    def fromDict(cls, data: Any, path: str = "relationship") -> "Relationship":
        if not isinstance(data, dict):
            raise DecodeError("expecting an object", path)

        if "data" not in data:
            raise DecodeError("missing data", f"{path}.data")
        links: Final = Links.fromDict(data.get("links"))
        related = data["data"]

        # A single object (or null) makes this a one-to-one relationship,
        # anything else must be a list of objects.
        if related is None:
            return cls(True, [], links)
        if isinstance(related, dict):
            return cls(True, [Object.fromDict(related, f"{path}.data")], links)
        if isinstance(related, list):
            return cls(
                False,
                [
                    Object.fromDict(o, f"{path}.data.[{i}]")
                    for i, o in enumerate(related)
                ],
                links,
            )
        raise DecodeError("expecting an object or a list of objects", f"{path}.data")

    def __repr__(self) -> str:
        return (
            f"Relationship(isOneToOne={self.isOneToOne}, "
            f"relatedObjects={self.relatedObjects!r})"
        )


class Object:
    """
    An API object: a type, an identifier and a bag of untyped attributes.

    Attributes keep the exact values decoded from the server, numbers are only
    converted when read through one of the typed accessors. Every setter
    records the attribute name in modifiedAttributes so that modifiedView()
    can build the payload for a partial update.
    """

    def __init__(self, type: str, id: str = "") -> None:
        if not type:
            raise ValueError("object type can't be empty")
        self._type = type
        self._id = id
        self._attributes: AttributeMap = {}
        self._contextAttributes: AttributeMap = {}
        self._relationships: Dict[str, Relationship] = {}
        self._data: Dict[str, Any] = {}
        self.links = Links()
        self.modifiedAttributes: List[str] = []

    @classmethod
    def fromDict(cls, data: Any, path: str = "data") -> "Object":
        if not isinstance(data, dict):
            raise DecodeError("expecting an object", path)

        objType = data.get("type")
        if not isinstance(objType, str) or not objType:
            raise DecodeError("missing object type", f"{path}.type")
        objId = data.get("id") or ""
        if not isinstance(objId, str):
            raise DecodeError("object id is not a string", f"{path}.id")

        obj: Final = cls(objType, objId)
        obj._attributes = _decodeMap(data.get("attributes"), f"{path}.attributes")
        obj._contextAttributes = _decodeMap(
            data.get("context_attributes"), f"{path}.context_attributes"
        )
        relationships = data.get("relationships") or {}
        if not isinstance(relationships, dict):
            raise DecodeError("expecting an object", f"{path}.relationships")
        for name, rel in relationships.items():
            obj._relationships[name] = Relationship.fromDict(
                rel, f"{path}.relationships.{name}"
            )
        obj.links = Links.fromDict(data.get("links"))
        return obj

    @property
    def id(self) -> str:
        return self._id

    @property
    def type(self) -> str:
        return self._type

    def attributes(self) -> List[str]:
        return list(self._attributes)

    def contextAttributes(self) -> List[str]:
        return list(self._contextAttributes)

    def relationships(self) -> List[str]:
        return list(self._relationships)

    def getRelationship(self, name: str) -> Relationship:
        """
        Returns the relationship with the given name. Relationships are only
        present when they were explicitly requested while fetching the object,
        so NotFound can mean either.
        """

        try:
            return self._relationships[name]
        except KeyError:
            raise NotFound(name, "relationship") from None

    def get(self, path: str) -> AttributeValue:
        """
        Returns the attribute addressed by a dotted path like
        "super.complex.data". A segment like "[2]" indexes into a list.
        """

        current: Any = self._attributes
        for segment in path.split("."):
            if segment.startswith("[") and segment.endswith("]"):
                if not isinstance(current, list):
                    raise TypeMismatch(segment, "list", "path segment")
                match = _INDEX.fullmatch(segment)
                position = int(match.group(1)) if match else -1
                if not 0 <= position < len(current):
                    raise NotFound(path)
                current = current[position]
            else:
                if not isinstance(current, dict):
                    raise TypeMismatch(segment, "mapping", "path segment")
                if segment not in current:
                    raise NotFound(path)
                current = current[segment]
        return current

    def _attribute(self, name: str) -> AttributeValue:
        if name not in self._attributes:
            raise NotFound(name)
        return self._attributes[name]

    def _contextAttribute(self, name: str) -> AttributeValue:
        if name not in self._contextAttributes:
            raise NotFound(name, "context attribute")
        return self._contextAttributes[name]

    def getString(self, name: str) -> str:
        return _asString(name, self._attribute(name), "attribute")

    def getInt(self, name: str) -> int:
        return _asInt(name, self._attribute(name), "attribute")

    def getFloat(self, name: str) -> float:
        return _asFloat(name, self._attribute(name), "attribute")

    def getBool(self, name: str) -> bool:
        return _asBool(name, self._attribute(name), "attribute")

    def getTime(self, name: str) -> datetime:
        return _asTime(name, self._attribute(name), "attribute")

    def getStringList(self, name: str) -> List[str]:
        return _asStringList(name, self._attribute(name), "attribute")

    def getContextString(self, name: str) -> str:
        return _asString(name, self._contextAttribute(name), "context attribute")

    def getContextInt(self, name: str) -> int:
        return _asInt(name, self._contextAttribute(name), "context attribute")

    def getContextFloat(self, name: str) -> float:
        return _asFloat(name, self._contextAttribute(name), "context attribute")

    def getContextBool(self, name: str) -> bool:
        return _asBool(name, self._contextAttribute(name), "context attribute")

    def getContextTime(self, name: str) -> datetime:
        return _asTime(name, self._contextAttribute(name), "context attribute")

    # The mustGet* family raises ShapeAssertionError instead of a recoverable
    # error. Only for call sites that already know the shape of the object.

    def mustGetString(self, name: str) -> str:
        return _must(self.getString, name)

    def mustGetInt(self, name: str) -> int:
        return _must(self.getInt, name)

    def mustGetFloat(self, name: str) -> float:
        return _must(self.getFloat, name)

    def mustGetBool(self, name: str) -> bool:
        return _must(self.getBool, name)

    def mustGetTime(self, name: str) -> datetime:
        return _must(self.getTime, name)

    def mustGetStringList(self, name: str) -> List[str]:
        return _must(self.getStringList, name)

    def mustGetContextString(self, name: str) -> str:
        return _must(self.getContextString, name)

    def mustGetContextInt(self, name: str) -> int:
        return _must(self.getContextInt, name)

    def mustGetContextFloat(self, name: str) -> float:
        return _must(self.getContextFloat, name)

    def mustGetContextBool(self, name: str) -> bool:
        return _must(self.getContextBool, name)

    def mustGetContextTime(self, name: str) -> datetime:
        return _must(self.getContextTime, name)

    def set(self, name: str, value: AttributeValue) -> None:
        self._attributes[name] = value
        self.modifiedAttributes.append(name)

    def setString(self, name: str, value: str) -> None:
        self.set(name, value)

    def setInt(self, name: str, value: int) -> None:
        self.set(name, value)

    def setFloat(self, name: str, value: float) -> None:
        self.set(name, value)

    def setBool(self, name: str, value: bool) -> None:
        self.set(name, value)

    def setTime(self, name: str, value: datetime) -> None:
        # Naive datetimes are taken as UTC, like the ones getTime returns.
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        self.set(name, int(value.timestamp()))

    def setData(self, name: str, value: Any) -> None:
        """Sets a member that travels next to "type" and "id" instead of
        inside "attributes"."""
        self._data[name] = value

    def modifiedView(self) -> Dict[str, Any]:
        view: Final[Dict[str, Any]] = dict(self._data)
        view["type"] = self._type
        if self._id:
            view["id"] = self._id
        # dict.fromkeys drops repeated names, values are read at this point
        # so the last write wins.
        view["attributes"] = {
            name: self._attributes[name]
            for name in dict.fromkeys(self.modifiedAttributes)
        }
        return view

    def _update(self, other: "Object") -> None:
        """Replaces this object's state with the server's answer to a write."""

        if other.type != self._type:
            raise DecodeError(
                f'expecting object of type "{self._type}", got "{other.type}"', "data.type"
            )
        if not self._id:
            self._id = other.id
        self._attributes = other._attributes
        self._contextAttributes = other._contextAttributes
        self._relationships = other._relationships
        self._data = {}
        self.links = other.links
        self.modifiedAttributes = []

    def __repr__(self) -> str:
        return f"Object(type={self._type!r}, id={self._id!r})"
