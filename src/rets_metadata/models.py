"""Core data structures for representing resolved RETS metadata.

These lightweight dataclasses are produced by the tree builder
(:mod:`rets_metadata.tree`) from parsed containers and consumed by whatever
sits on top of the resolved metadata (search builders, form generators,
value decoders). They avoid framework dependencies so they can be cached or
serialized easily.

Overview:
        * ``MetadataKind`` enumerates the seven metadata documents a RETS
            server publishes.
        * ``ResourceNode`` → ``ClassNode`` → ``TableNode`` mirrors the logical
            hierarchy of a server's schema. Each ``TableNode`` owns its resolved
            ``LookupNode`` (if any) so permissible values are one hop away.

Typical construction (simplified)::

        from rets_metadata.models import LookupNode, LookupValue, TableNode

        area = LookupNode(
                name="Area",
                resource_id="Property",
                values=[LookupValue(value="N", long_value="North", short_value="N")],
        )
        field = TableNode(system_name="AREA", lookup_name="Area", lookup=area)
        field.resolve("N")   # "North"

Design notes:
        * Children are kept in plain lists for predictable order (matching row
            order in the source documents).
        * Raw row fields are retained verbatim on every node under ``fields`` so
            nothing the server published is lost by the typed attributes.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, TextIO

from .exceptions import UnknownKindError

Row = Dict[str, str]


class MetadataKind(Enum):
    """The closed set of metadata documents a RETS server publishes.

    The value of each member is the canonical uppercase tag used both as the
    ``METADATA-<TAG>`` element suffix and as the type argument handed to a
    fetcher.
    """

    SYSTEM = "SYSTEM"
    RESOURCE = "RESOURCE"
    CLASS = "CLASS"
    TABLE = "TABLE"
    LOOKUP = "LOOKUP"
    LOOKUP_TYPE = "LOOKUP_TYPE"
    OBJECT = "OBJECT"

    @property
    def tag(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: "MetadataKind | str") -> "MetadataKind":
        """Coerce a member, tag (``"LOOKUP_TYPE"``) or key (``"lookup_type"``).

        Raises:
            UnknownKindError: If ``value`` does not name one of the seven kinds.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized.startswith("METADATA-"):
                normalized = normalized[len("METADATA-") :]
            for kind in cls:
                if kind.value == normalized:
                    return kind
        raise UnknownKindError(value)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    value = value.strip()
    if value.lstrip("-").isdigit():
        return int(value)
    return None


def _parse_flag(value: Optional[str]) -> bool:
    return (value or "").strip() in {"1", "true", "True", "TRUE", "Y", "y"}


@dataclass
class LookupValue:
    """One enumerated value of a lookup with its long and short display forms."""

    value: str
    long_value: str
    short_value: str

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "LookupValue":
        return cls(
            value=row.get("Value", ""),
            long_value=row.get("LongValue", ""),
            short_value=row.get("ShortValue", ""),
        )


@dataclass
class LookupNode:
    """A lookup joined with all of its lookup type rows.

    Attributes:
        name: ``LookupName`` shared by the lookup row and its lookup types.
        resource_id: Resource that owns the lookup.
        visible_name: Human readable name from the lookup row (may be empty
            when the server published lookup types without a lookup row).
        values: Ordered :class:`LookupValue` entries.
        fields: Raw lookup row, empty when no lookup row exists.
    """

    name: str
    resource_id: str = ""
    visible_name: str = ""
    values: List[LookupValue] = field(default_factory=list)
    fields: Row = field(default_factory=dict)

    def find_value(self, value: str) -> Optional[LookupValue]:
        """Match ``value`` against the stored value, then short and long forms."""
        for attr in ("value", "short_value", "long_value"):
            for entry in self.values:
                if getattr(entry, attr) == value:
                    return entry
        return None

    def long_value_for(self, value: str) -> Optional[str]:
        entry = self.find_value(value)
        return entry.long_value if entry else None

    def short_value_for(self, value: str) -> Optional[str]:
        entry = self.find_value(value)
        return entry.short_value if entry else None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "resource_id": self.resource_id,
            "visible_name": self.visible_name,
            "values": [
                {
                    "value": v.value,
                    "long_value": v.long_value,
                    "short_value": v.short_value,
                }
                for v in self.values
            ],
        }


@dataclass
class TableNode:
    """One field definition of a class.

    Only ``system_name`` is required; the remaining typed attributes are
    interpreted from the raw row (numeric columns become ``int`` or ``None``).
    """

    system_name: str
    standard_name: str = ""
    long_name: str = ""
    data_type: str = ""
    interpretation: str = ""
    lookup_name: str = ""
    max_length: Optional[int] = None
    precision: Optional[int] = None
    searchable: bool = False
    required: bool = False
    fields: Row = field(default_factory=dict)
    lookup: Optional[LookupNode] = None

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "TableNode":
        return cls(
            system_name=row.get("SystemName", ""),
            standard_name=row.get("StandardName", ""),
            long_name=row.get("LongName", ""),
            data_type=row.get("DataType", ""),
            interpretation=row.get("Interpretation", ""),
            lookup_name=row.get("LookupName", "").strip(),
            max_length=_parse_int(row.get("MaximumLength")),
            precision=_parse_int(row.get("Precision")),
            searchable=_parse_flag(row.get("Searchable")),
            required=_parse_flag(row.get("Required")),
            fields=dict(row),
        )

    @property
    def is_lookup(self) -> bool:
        return self.lookup is not None

    @property
    def is_multi_lookup(self) -> bool:
        return self.interpretation == "LookupMulti"

    def resolve(self, value: str) -> "str | List[str]":
        """Translate a raw field value into its long lookup form(s).

        ``LookupMulti`` values are comma separated and resolve to a list.
        Values without a matching lookup entry (or fields without a lookup)
        pass through unchanged.

        Example:
            >>> table.resolve("N")
            'North'
            >>> multi.resolve("N,S")
            ['North', 'South']
        """
        if self.is_multi_lookup:
            parts = [part.strip() for part in value.split(",") if part.strip()]
            return [self._resolve_one(part) for part in parts]
        return self._resolve_one(value)

    def _resolve_one(self, value: str) -> str:
        if self.lookup is None:
            return value
        long_value = self.lookup.long_value_for(value)
        return long_value if long_value is not None else value

    def to_dict(self) -> dict:
        return {
            "system_name": self.system_name,
            "standard_name": self.standard_name,
            "long_name": self.long_name,
            "data_type": self.data_type,
            "interpretation": self.interpretation,
            "lookup_name": self.lookup_name,
            "max_length": self.max_length,
            "precision": self.precision,
            "searchable": self.searchable,
            "required": self.required,
            "lookup": self.lookup.to_dict() if self.lookup else None,
        }


@dataclass
class ClassNode:
    """A record class of a resource and its ordered field tables."""

    name: str
    resource_id: str = ""
    visible_name: str = ""
    standard_name: str = ""
    description: str = ""
    fields: Row = field(default_factory=dict)
    tables: List[TableNode] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Mapping[str, str], resource_id: str) -> "ClassNode":
        return cls(
            name=row.get("ClassName", ""),
            resource_id=resource_id,
            visible_name=row.get("VisibleName", ""),
            standard_name=row.get("StandardName", ""),
            description=row.get("Description", ""),
            fields=dict(row),
        )

    def find_table(self, system_name: str) -> Optional[TableNode]:
        for table in self.tables:
            if table.system_name == system_name:
                return table
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "resource_id": self.resource_id,
            "visible_name": self.visible_name,
            "standard_name": self.standard_name,
            "description": self.description,
            "tables": [table.to_dict() for table in self.tables],
        }


@dataclass
class ResourceNode:
    """Top level RETS resource (``Property``, ``Agent``, ``Office`` ...).

    Attributes:
        id: ``ResourceID`` exactly as published; the tree keys it lower-cased.
        standard_name: ``StandardName`` column.
        key_field: System name of the resource's key field.
        visible_name: Human readable name.
        description: Free text description.
        fields: Raw resource row.
        classes: Ordered :class:`ClassNode` children.

    Example:
        >>> resource = tree["property"]
        >>> [c.name for c in resource.classes]
        ['RES', 'LND']
    """

    id: str
    standard_name: str = ""
    key_field: str = ""
    visible_name: str = ""
    description: str = ""
    fields: Row = field(default_factory=dict)
    classes: List[ClassNode] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Mapping[str, str]) -> "ResourceNode":
        return cls(
            id=row.get("ResourceID", ""),
            standard_name=row.get("StandardName", ""),
            key_field=row.get("KeyField", ""),
            visible_name=row.get("VisibleName", ""),
            description=row.get("Description", ""),
            fields=dict(row),
        )

    def find_class(self, name: str) -> Optional[ClassNode]:
        """Return the class called ``name``; exact match wins over case-insensitive."""
        for rets_class in self.classes:
            if rets_class.name == name:
                return rets_class
        lowered = name.lower()
        for rets_class in self.classes:
            if rets_class.name.lower() == lowered:
                return rets_class
        return None

    def iter_tables(self) -> Iterator[TableNode]:
        for rets_class in self.classes:
            yield from rets_class.tables

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "standard_name": self.standard_name,
            "key_field": self.key_field,
            "visible_name": self.visible_name,
            "description": self.description,
            "classes": [rets_class.to_dict() for rets_class in self.classes],
        }

    def print_tree(self, out: Optional[TextIO] = None) -> None:
        """Write an indented outline of this resource to ``out`` (stdout by default)."""
        out = out or sys.stdout
        out.write(f"Resource: {self.id} (Key Field: {self.key_field})\n")
        for rets_class in self.classes:
            out.write(f"  Class: {rets_class.name}\n")
            out.write(f"    Visible Name: {rets_class.visible_name}\n")
            out.write(f"    Description : {rets_class.description}\n")
            for table in rets_class.tables:
                kind = "LookupTable" if table.lookup else "Table"
                out.write(f"    {kind}: {table.system_name}\n")
                out.write(f"      Resource: {self.id}\n")
                out.write(f"      ShortName: {table.standard_name}\n")
                out.write(f"      LongName: {table.long_name}\n")
                if table.lookup:
                    out.write("      Types:\n")
                    for value in table.lookup.values:
                        out.write(f"        {value.long_value} -> {value.value}\n")
