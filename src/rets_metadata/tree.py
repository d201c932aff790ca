"""Build the denormalized resource tree from parsed containers.

RETS describes its schema as five flat, cross-referencing documents::

    Resource
     |
    Class
     |
     `-- Table
     |
     `-- Lookup
           |
           `-- LookupType

Consumers almost always want a field's permissible values, so the builder
relates lookup types to their lookup and attaches the result directly to
every table that names it, leaving a four level tree::

    Resource
     |
    Class
     |
     `-- Table
          |
          `-- Lookup (with its values)

The build is a pure function of the container map: containers are only
read, and a fresh :class:`MetadataTree` is returned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping as MappingABC
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .containers import Container
from .models import (
    ClassNode,
    LookupNode,
    LookupValue,
    MetadataKind,
    ResourceNode,
    Row,
    TableNode,
)

logger = logging.getLogger(__name__)

LookupKey = Tuple[str, str]


class MetadataTree(MappingABC):
    """Read-only mapping of lower-cased resource id → :class:`ResourceNode`.

    Keys are case-insensitive: ``tree["Property"]`` and ``tree["property"]``
    return the same node. Missing keys raise ``KeyError`` (``get`` returns
    ``None``); lookups never insert entries.
    """

    def __init__(self, resources: Optional[Dict[str, ResourceNode]] = None) -> None:
        self._resources: Dict[str, ResourceNode] = {}
        for key, resource in (resources or {}).items():
            self._resources[key.lower()] = resource

    def __getitem__(self, key: str) -> ResourceNode:
        if not isinstance(key, str):
            raise KeyError(key)
        return self._resources[key.lower()]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._resources

    def __iter__(self) -> Iterator[str]:
        return iter(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    def __repr__(self) -> str:
        return f"MetadataTree({list(self._resources)!r})"

    def to_dict(self) -> dict:
        return {key: resource.to_dict() for key, resource in self._resources.items()}


def _containers(
    containers: Mapping[MetadataKind, Sequence[Container]], kind: MetadataKind
) -> Sequence[Container]:
    return containers.get(kind, ())


def _rows(
    containers: Mapping[MetadataKind, Sequence[Container]], kind: MetadataKind
) -> Iterator[Tuple[Container, Row]]:
    for container in _containers(containers, kind):
        for row in container.rows:
            yield container, row


def index_lookup_types(
    containers: Mapping[MetadataKind, Sequence[Container]],
) -> Dict[LookupKey, List[LookupValue]]:
    """Group lookup type rows by ``(resource id, lookup name)``.

    The lookup name comes from the row's ``LookupName`` column or, as RETS
    publishes it, the fragment's ``Lookup`` attribute.
    """
    index: Dict[LookupKey, List[LookupValue]] = {}
    for container, row in _rows(containers, MetadataKind.LOOKUP_TYPE):
        lookup_name = container.reference(row, "LookupName") or container.reference(
            row, "Lookup"
        )
        if not lookup_name:
            continue
        key = (container.reference(row, "Resource"), lookup_name)
        index.setdefault(key, []).append(LookupValue.from_row(row))
    return index


def index_lookups(
    containers: Mapping[MetadataKind, Sequence[Container]],
) -> Dict[LookupKey, Row]:
    """Map ``(resource id, lookup name)`` to the declaring lookup row."""
    index: Dict[LookupKey, Row] = {}
    for container, row in _rows(containers, MetadataKind.LOOKUP):
        lookup_name = row.get("LookupName", "")
        if lookup_name:
            index[(container.reference(row, "Resource"), lookup_name)] = row
    return index


class TreeBuilder:
    """Assemble resources, classes, tables and lookups into a tree.

    Example:
        builder = TreeBuilder(root.containers())
        tree = builder.build()
        tree["property"].find_class("RES").find_table("AREA").lookup
    """

    def __init__(self, containers: Mapping[MetadataKind, Sequence[Container]]) -> None:
        self.containers = containers
        self.lookup_types = index_lookup_types(containers)
        self.lookups = index_lookups(containers)

    def build(self) -> MetadataTree:
        resources: Dict[str, ResourceNode] = {}
        for _, row in _rows(self.containers, MetadataKind.RESOURCE):
            resource = self.build_resource(row)
            resources[resource.id.lower()] = resource
        logger.debug(
            f"Built metadata tree with {len(resources)} resources "
            f"and {len(self.lookup_types)} lookups"
        )
        return MetadataTree(resources)

    def build_resource(self, row: Row) -> ResourceNode:
        resource = ResourceNode.from_row(row)
        for container, class_row in _rows(self.containers, MetadataKind.CLASS):
            if container.reference(class_row, "Resource") == resource.id:
                resource.classes.append(self.build_class(class_row, resource.id))
        return resource

    def build_class(self, row: Row, resource_id: str) -> ClassNode:
        rets_class = ClassNode.from_row(row, resource_id)
        for container, table_row in _rows(self.containers, MetadataKind.TABLE):
            if (
                container.reference(table_row, "Resource") == resource_id
                and container.reference(table_row, "Class") == rets_class.name
            ):
                rets_class.tables.append(self.build_table(table_row, resource_id))
        return rets_class

    def build_table(self, row: Row, resource_id: str) -> TableNode:
        table = TableNode.from_row(row)
        if table.lookup_name:
            table.lookup = self.build_lookup(resource_id, table.lookup_name)
        return table

    def build_lookup(self, resource_id: str, lookup_name: str) -> Optional[LookupNode]:
        """Return the joined lookup, or ``None`` when no lookup types exist.

        Lookup type rows alone are enough to build the node: some servers
        publish LOOKUP_TYPE fragments for names no LOOKUP row declares, and
        their values are still the field's permissible values. The LOOKUP
        row, when present, only contributes ``visible_name`` and ``fields``.
        """
        key = (resource_id, lookup_name)
        values = self.lookup_types.get(key)
        if values is None:
            return None
        lookup_row = self.lookups.get(key, {})
        return LookupNode(
            name=lookup_name,
            resource_id=resource_id,
            visible_name=lookup_row.get("VisibleName", ""),
            values=list(values),
            fields=dict(lookup_row),
        )


def build_tree(containers: Mapping[MetadataKind, Sequence[Container]]) -> MetadataTree:
    """Build the resource tree for a full ``MetadataKind`` → containers map."""
    return TreeBuilder(containers).build()
