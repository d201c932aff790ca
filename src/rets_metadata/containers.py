"""Parse raw RETS metadata documents into row containers.

A RETS server answers ``GetMetadata`` with one XML document per metadata
kind. Each document wraps one or more ``METADATA-<TYPE>`` fragments in the
COMPACT format::

    <RETS ReplyCode="0" ReplyText="Success">
      <METADATA-CLASS Resource="Property" Version="1.0" Date="2020-01-01">
        <COLUMNS>\tClassName\tVisibleName\t</COLUMNS>
        <DATA>\tRES\tResidential\t</DATA>
        <DATA>\tLND\tLand\t</DATA>
      </METADATA-CLASS>
    </RETS>

Each fragment becomes a :class:`Container` exposing its rows as
``Dict[str, str]`` in document order. The SYSTEM fragment is laid out
differently (attributes instead of ``COLUMNS``/``DATA``) and gets its own
:class:`SystemContainer`.

Dispatch strategy:
The fragment tag is mapped to a class name (``METADATA-LOOKUP_TYPE`` →
``LookupTypeContainer``) and matched against :data:`CONTAINER_CLASSES`.
Names outside that fixed table fall back to the generic :class:`Container`
so servers publishing extra metadata kinds still parse.

Typical usage:
        from rets_metadata.containers import parse_metadata

        containers = parse_metadata(xml_text)
        for row in containers[0].rows:
                print(row["ClassName"])
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Type

from .exceptions import MalformedRowError, ParseError
from .models import Row


@dataclass
class ParserConfig:
    """Configuration for container parsing.

    Args:
        default_delimiter: Field delimiter used when the document carries no
            ``<DELIMITER value="..."/>`` element (RETS default is tab).
        strip_values: Strip surrounding whitespace from every column name and
            value. Off by default so values round-trip exactly.
        fragment_prefix: Tag prefix identifying metadata fragments.
    """

    default_delimiter: str = "\t"
    strip_values: bool = False
    fragment_prefix: str = "METADATA-"


class Container:
    """Generic row container for one ``METADATA-*`` fragment.

    Attributes:
        tag: Fragment tag, e.g. ``METADATA-TABLE``.
        attributes: XML attributes of the fragment element (``Resource``,
            ``Class``, ``Version`` ...).
        columns: Column names declared by ``<COLUMNS>``.
        rows: One mapping per ``<DATA>`` element, in document order.

    Raises:
        ParseError: ``<DATA>`` rows without a ``<COLUMNS>`` header.
        MalformedRowError: A row whose field count differs from the header.
    """

    def __init__(
        self,
        fragment: ET.Element,
        config: Optional[ParserConfig] = None,
        delimiter: Optional[str] = None,
    ) -> None:
        self.config = config or ParserConfig()
        self.delimiter = delimiter or self.config.default_delimiter
        self.tag = fragment.tag
        self.attributes: Dict[str, str] = dict(fragment.attrib)
        self.columns: List[str] = []
        self.rows: List[Row] = self._parse_rows(fragment)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(tag={self.tag!r}, rows={len(self.rows)})"

    @property
    def type_name(self) -> str:
        """Fragment tag without the ``METADATA-`` prefix."""
        return _strip_prefix(self.tag, self.config.fragment_prefix)

    def reference(self, row: Mapping[str, str], name: str) -> str:
        """Return a parent reference (``Resource``, ``Class``, ``Lookup`` ...).

        RETS publishes parent references as fragment attributes, but some
        servers repeat them as row columns; the row value wins when present.
        """
        value = row.get(name)
        if value:
            return value
        return self.attributes.get(name, "")

    # ---------------- Internal helpers ---------------- #

    def _parse_rows(self, fragment: ET.Element) -> List[Row]:
        columns_element = fragment.find("COLUMNS")
        data_elements = fragment.findall("DATA")
        if columns_element is None:
            if data_elements:
                raise ParseError("DATA rows without a COLUMNS header", tag=self.tag)
            return []
        self.columns = self._split(columns_element.text)
        rows: List[Row] = []
        for index, data in enumerate(data_elements):
            values = self._split(data.text)
            if len(values) != len(self.columns):
                raise MalformedRowError(
                    self.tag, index, expected=len(self.columns), actual=len(values)
                )
            rows.append(dict(zip(self.columns, values)))
        return rows

    def _split(self, text: Optional[str]) -> List[str]:
        """Split a COMPACT line, dropping the enclosing delimiters."""
        line = (text or "").strip("\r\n")
        if not line:
            return []
        if line.startswith(self.delimiter):
            line = line[len(self.delimiter) :]
        if line.endswith(self.delimiter):
            line = line[: -len(self.delimiter)]
        values = line.split(self.delimiter)
        if self.config.strip_values:
            values = [value.strip() for value in values]
        return values


class SystemContainer(Container):
    """The SYSTEM fragment: a single administrative row.

    The row merges the fragment's ``Version``/``Date`` attributes with the
    ``<SYSTEM>`` element's attributes and the ``<COMMENTS>`` text. A
    fragment without a ``<SYSTEM>`` element has no rows.
    """

    def _parse_rows(self, fragment: ET.Element) -> List[Row]:
        system = fragment.find("SYSTEM")
        if system is None:
            return []
        row: Row = {
            "Version": fragment.get("Version", ""),
            "Date": fragment.get("Date", ""),
        }
        row.update(system.attrib)
        comments = fragment.find("COMMENTS")
        row["Comments"] = (comments.text or "").strip() if comments is not None else ""
        self.columns = list(row)
        return [row]

    def _field(self, name: str) -> str:
        return self.rows[0].get(name, "") if self.rows else ""

    @property
    def version(self) -> str:
        return self._field("Version")

    @property
    def date(self) -> str:
        return self._field("Date")

    @property
    def system_id(self) -> str:
        return self._field("SystemID")

    @property
    def system_description(self) -> str:
        return self._field("SystemDescription")

    @property
    def comments(self) -> str:
        return self._field("Comments")


class ResourceContainer(Container):
    pass


class ClassContainer(Container):
    @property
    def resource(self) -> str:
        return self.attributes.get("Resource", "")


class TableContainer(Container):
    @property
    def resource(self) -> str:
        return self.attributes.get("Resource", "")

    @property
    def class_name(self) -> str:
        return self.attributes.get("Class", "")


class LookupContainer(Container):
    @property
    def resource(self) -> str:
        return self.attributes.get("Resource", "")


class LookupTypeContainer(Container):
    @property
    def resource(self) -> str:
        return self.attributes.get("Resource", "")

    @property
    def lookup(self) -> str:
        return self.attributes.get("Lookup", "")


class ObjectContainer(Container):
    @property
    def resource(self) -> str:
        return self.attributes.get("Resource", "")


# Fixed dispatch table; anything else parses as a generic Container.
CONTAINER_CLASSES: Dict[str, Type[Container]] = {
    "SystemContainer": SystemContainer,
    "ResourceContainer": ResourceContainer,
    "ClassContainer": ClassContainer,
    "TableContainer": TableContainer,
    "LookupContainer": LookupContainer,
    "LookupTypeContainer": LookupTypeContainer,
    "ObjectContainer": ObjectContainer,
}


def _strip_prefix(tag: str, prefix: str) -> str:
    return tag[len(prefix) :] if tag.startswith(prefix) else tag


def container_name(tag: str, prefix: str = "METADATA-") -> str:
    """``METADATA-LOOKUP_TYPE`` → ``LookupTypeContainer``."""
    type_name = _strip_prefix(tag, prefix)
    camel = "".join(part.capitalize() for part in type_name.split("_"))
    return f"{camel}Container"


def container_class_for(tag: str, prefix: str = "METADATA-") -> Type[Container]:
    """Return the most specific container class for a fragment tag."""
    return CONTAINER_CLASSES.get(container_name(tag, prefix), Container)


def build_container(
    fragment: ET.Element,
    config: Optional[ParserConfig] = None,
    delimiter: Optional[str] = None,
) -> Container:
    """Instantiate the container variant matching ``fragment``'s tag.

    Raises:
        ParseError: If the element is not a ``METADATA-*`` fragment or its
            structure cannot be parsed.
    """
    config = config or ParserConfig()
    if not fragment.tag.startswith(config.fragment_prefix):
        raise ParseError("not a metadata fragment", tag=fragment.tag)
    container_class = container_class_for(fragment.tag, config.fragment_prefix)
    return container_class(fragment, config=config, delimiter=delimiter)


def _document_delimiter(root: ET.Element) -> Optional[str]:
    element = root.find("DELIMITER")
    if element is None:
        return None
    value = element.get("value")
    if not value:
        return None
    try:
        return chr(int(value, 16))
    except ValueError as e:
        raise ParseError(f"invalid delimiter '{value}'", tag="DELIMITER") from e


def parse_metadata(
    source: str, config: Optional[ParserConfig] = None, kind: Optional[str] = None
) -> List[Container]:
    """Parse one raw metadata document into its containers.

    Args:
        source: Raw XML text returned by the server.
        config: Optional :class:`ParserConfig`.
        kind: Metadata kind tag, only used to label parse errors.

    Returns:
        One container per ``METADATA-*`` child of the document root, in
        document order.

    Raises:
        ParseError: Unreadable XML or an unparsable fragment.
        MalformedRowError: A row whose field count differs from its header.

    Example:
        containers = parse_metadata(fetch("RESOURCE"))
        ids = [row["ResourceID"] for c in containers for row in c.rows]
    """
    config = config or ParserConfig()
    try:
        root = ET.fromstring(source)
    except ET.ParseError as e:
        raise ParseError(f"unreadable metadata document ({e})", tag=kind) from e
    delimiter = _document_delimiter(root)
    return [
        build_container(fragment, config=config, delimiter=delimiter)
        for fragment in root
        if isinstance(fragment.tag, str)
        and fragment.tag.startswith(config.fragment_prefix)
    ]
