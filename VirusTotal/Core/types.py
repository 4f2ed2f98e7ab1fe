from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

# Numbers keep their wire form: ints stay ints, non-integral values are
# decoded as Decimal and only coerced by the typed accessors.
AttributeValue = Union[
    str, int, Decimal, float, bool, None, List[Any], Dict[str, Any]
]
AttributeMap = Dict[str, AttributeValue]


@dataclass
class Links:
    self: str = ""
    next: str = ""

    @classmethod
    def fromDict(cls, data: Optional[Dict[str, Any]]) -> "Links":
        if not isinstance(data, dict):
            return cls()
        return cls(self=data.get("self") or "", next=data.get("next") or "")
