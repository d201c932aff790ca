"""RETS Metadata
=================

Resolve a RETS server's metadata (one XML document per metadata kind) into
parsed row containers and a denormalized, navigable resource tree.

Key capabilities
----------------
- Parse COMPACT ``METADATA-*`` fragments into ordered rows via
  :func:`~rets_metadata.containers.parse_metadata`.
- Build a ``Resource → Class → Table → Lookup`` tree where every table owns
  its resolved lookup values (:mod:`rets_metadata.tree`).
- Fetch each metadata kind exactly once, snapshot/restore raw sources, and
  compare against the server's current version or timestamp
  (:class:`~rets_metadata.root.Root`).
- In-process and optional Redis-backed snapshot caching
  (:mod:`rets_metadata.cache`).

Design principles
-----------------
1. **Deterministic parsing** – pure transformations with explicit
   configuration via :class:`~rets_metadata.containers.ParserConfig`.
2. **Lazy resolution** – sources, containers and the tree are each computed
   once on first use and cached by the owning Root.
3. **Raw snapshots** – only raw XML is persisted; derived objects are always
   rebuilt from it.

Docstring style
---------------
Public functions and classes follow the Google docstring convention (Args,
Returns, Raises, Examples).

Minimal quick start
-------------------
>>> from rets_metadata import Root
>>> root = Root(fetcher=session.retrieve_metadata_type)
>>> root.fetch_sources()
>>> [table.system_name for table in root.tree()["property"].iter_tables()][:5]
"""

__version__ = "0.1.0"

from .containers import Container, ParserConfig, parse_metadata
from .exceptions import (
    FetchError,
    MalformedRowError,
    MissingSystemDataError,
    ParseError,
    RetsMetadataError,
    UnknownKindError,
)
from .models import ClassNode, LookupNode, LookupValue, MetadataKind, ResourceNode, TableNode
from .root import Root, RootState
from .tree import MetadataTree, build_tree

__all__ = [
    "ClassNode",
    "Container",
    "FetchError",
    "LookupNode",
    "LookupValue",
    "MalformedRowError",
    "MetadataKind",
    "MetadataTree",
    "MissingSystemDataError",
    "ParseError",
    "ParserConfig",
    "ResourceNode",
    "RetsMetadataError",
    "Root",
    "RootState",
    "TableNode",
    "UnknownKindError",
    "build_tree",
    "parse_metadata",
]
