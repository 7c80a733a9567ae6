"""
Field rules and store definitions for the dashboard's record stores.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Pattern, Tuple


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"


@dataclass(frozen=True)
class FieldRule:
    """Constraints for a single record field. Immutable once declared."""

    type: FieldType
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[Pattern] = None
    enum: Optional[FrozenSet[str]] = None
    # Declared order of enum members, used for messages
    enum_order: Tuple[str, ...] = ()


def string_field(required: bool = True, min_length: int = None, max_length: int = None,
                 pattern: str = None, choices: Tuple[str, ...] = None) -> FieldRule:
    return FieldRule(
        type=FieldType.STRING,
        required=required,
        min_length=min_length,
        max_length=max_length,
        pattern=re.compile(pattern) if pattern else None,
        enum=frozenset(choices) if choices else None,
        enum_order=tuple(choices) if choices else (),
    )


def number_field(required: bool = True, min: float = None, max: float = None) -> FieldRule:
    return FieldRule(type=FieldType.NUMBER, required=required, min=min, max=max)


def date_field(required: bool = True) -> FieldRule:
    return FieldRule(type=FieldType.DATE, required=required)


@dataclass(frozen=True)
class Relationship:
    """A field whose values refer to a field of another store."""

    field: str
    target_store: str
    target_field: str

    @classmethod
    def parse(cls, declaration: str) -> "Relationship":
        """Parse ``"captainName -> sales.name"``."""
        try:
            source, target = (part.strip() for part in declaration.split("->"))
            target_store, target_field = target.split(".")
        except ValueError:
            raise ValueError(f"Invalid relationship declaration: {declaration!r}") from None
        return cls(source, target_store.strip(), target_field.strip())

    def __str__(self) -> str:
        return f"{self.field} -> {self.target_store}.{self.target_field}"


AMOUNT_MAX = 999999
REGIONS = ("North", "South", "East", "West")
SLABS = ("Gold", "Silver", "Bronze")


def _audit_fields() -> Dict[str, FieldRule]:
    return {
        "createdAt": date_field(),
        "updatedAt": date_field(),
    }


SALES_SCHEMA: Dict[str, FieldRule] = {
    "id": string_field(),
    "name": string_field(min_length=2, max_length=50),
    "monthlyTarget": number_field(min=0, max=AMOUNT_MAX),
    "mtdTarget": number_field(min=0, max=AMOUNT_MAX),
    "mtdActual": number_field(min=0, max=AMOUNT_MAX),
    **_audit_fields(),
}

DSR_SCHEMA: Dict[str, FieldRule] = {
    "id": string_field(),
    "name": string_field(min_length=2, max_length=50),
    "dsrId": string_field(pattern=r"^DSR\d{3}$"),
    "cluster": string_field(choices=REGIONS),
    # Captain names in the dashboard are often single letters ("A", "B")
    "captainName": string_field(min_length=1, max_length=50),
    "lastMonthActual": number_field(min=0, max=AMOUNT_MAX),
    "thisMonthActual": number_field(min=0, max=AMOUNT_MAX),
    "slab": string_field(choices=SLABS),
    **_audit_fields(),
}

DE_SCHEMA: Dict[str, FieldRule] = {
    "id": string_field(),
    "name": string_field(min_length=2, max_length=50),
    "deId": string_field(pattern=r"^DE\d{3}$"),
    "region": string_field(choices=REGIONS),
    "captainName": string_field(min_length=1, max_length=50),
    "lastMonthActual": number_field(min=0, max=AMOUNT_MAX),
    "thisMonthActual": number_field(min=0, max=AMOUNT_MAX),
    "slab": string_field(choices=SLABS),
    **_audit_fields(),
}

SALES_LOG_SCHEMA: Dict[str, FieldRule] = {
    "id": string_field(),
    "date": string_field(pattern=r"^\d{1,2}-[A-Za-z]{3}$"),
    "captainA": number_field(min=0, max=AMOUNT_MAX),
    "captainB": number_field(min=0, max=AMOUNT_MAX),
    "captainC": number_field(min=0, max=AMOUNT_MAX),
    "captainD": number_field(min=0, max=AMOUNT_MAX),
    "total": number_field(min=0, max=AMOUNT_MAX),
    **_audit_fields(),
}

# name -> (schema, relationships)
DEFAULT_STORES = {
    "sales": (SALES_SCHEMA, ()),
    "dsr": (DSR_SCHEMA, ("captainName -> sales.name",)),
    "de": (DE_SCHEMA, ("captainName -> sales.name",)),
    "salesLog": (SALES_LOG_SCHEMA, ()),
}
