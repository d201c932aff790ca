"""Metadata orchestration: sources, parsed containers and the resource tree.

:class:`Root` owns three lazily filled caches:

* ``sources`` – raw XML per metadata kind, fetched once per kind or restored
  from a snapshot.
* per-kind containers – parsed on first access to :meth:`Root.containers_for`.
* the resource tree – built on first access to :meth:`Root.tree`.

Only raw sources are persisted (see :meth:`Root.snapshot`); everything else
is derived and rebuilt on demand, so a snapshot stays valid across releases
of this package.

Example:
        from rets_metadata import Root

        root = Root(fetcher=session.retrieve_metadata_type)
        root.fetch_sources()
        if not root.is_current(server_timestamp, server_version):
                ...
        lot_size = root.tree()["property"].find_class("RES").find_table("LOTSZ")
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, TextIO

from .containers import Container, ParserConfig, SystemContainer, parse_metadata
from .exceptions import FetchError, MissingSystemDataError
from .models import MetadataKind, ResourceNode
from .tree import MetadataTree, build_tree

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], str]


class RootState(Enum):
    UNINITIALIZED = "uninitialized"
    SOURCES_LOADED = "sources_loaded"
    CONTAINERS_RESOLVED = "containers_resolved"
    TREE_BUILT = "tree_built"


class Root:
    """Resolve a server's metadata from raw sources to a navigable tree.

    Args:
        fetcher: Callable taking a metadata kind tag (``"LOOKUP_TYPE"``) and
            returning the raw XML document. Its exceptions propagate as-is.
        config: Optional :class:`~rets_metadata.containers.ParserConfig`.

    A Root is not thread safe; confine each instance to one owner.
    """

    def __init__(
        self, fetcher: Optional[Fetcher] = None, config: Optional[ParserConfig] = None
    ) -> None:
        self.fetcher = fetcher
        self.config = config or ParserConfig()
        self._sources: Dict[str, str] = {}
        self._containers: Dict[MetadataKind, List[Container]] = {}
        self._tree: Optional[MetadataTree] = None

    # ---------------- Sources ---------------- #

    @property
    def state(self) -> RootState:
        if self._tree is not None:
            return RootState.TREE_BUILT
        if self._containers:
            return RootState.CONTAINERS_RESOLVED
        if self._sources:
            return RootState.SOURCES_LOADED
        return RootState.UNINITIALIZED

    @property
    def sources(self) -> Dict[str, str]:
        """Copy of the raw source map (kind tag → XML text)."""
        return dict(self._sources)

    def fetch_sources(self, fetcher: Optional[Fetcher] = None) -> Dict[str, str]:
        """Fetch every metadata kind not loaded yet; no-op when all are present.

        Kinds already loaded (restored, or fetched lazily by
        :meth:`containers_for`) are not fetched again.

        Args:
            fetcher: Overrides the fetcher given at construction.

        Returns:
            Copy of the source map.

        Raises:
            FetchError: Kinds are missing and no fetcher is available.
            Exception: Anything the fetcher raises, unchanged. Sources fetched
                by this call before the failure are discarded.
        """
        missing = [kind for kind in MetadataKind if kind.tag not in self._sources]
        if not missing:
            return self.sources
        fetcher = self._require_fetcher(fetcher)
        fetched: Dict[str, str] = {}
        for kind in missing:
            logger.info(f"Fetching {kind.tag} metadata")
            fetched[kind.tag] = fetcher(kind.tag)
        self._sources.update(fetched)
        return self.sources

    def snapshot(self) -> Dict[str, str]:
        """Raw sources for external caching; restore with :meth:`restore`."""
        return self.sources

    def restore(self, snapshot: Mapping[str, str]) -> None:
        """Replace all sources with ``snapshot`` and drop derived caches.

        Raises:
            UnknownKindError: A snapshot key is not a metadata kind.
        """
        sources = {MetadataKind.parse(key).tag: value for key, value in snapshot.items()}
        self._sources = sources
        self._containers = {}
        self._tree = None
        logger.debug(f"Restored {len(sources)} metadata sources from snapshot")

    # Pickling keeps the parser config and raw sources; the fetcher is dropped.
    def __reduce__(self):
        return (type(self), (None, self.config), self.snapshot())

    def __setstate__(self, state: Mapping[str, str]) -> None:
        self.restore(state)

    def _require_fetcher(self, fetcher: Optional[Fetcher] = None) -> Fetcher:
        fetcher = fetcher or self.fetcher
        if fetcher is None:
            raise FetchError("No metadata fetcher configured")
        return fetcher

    def _source_for(self, kind: MetadataKind) -> str:
        source = self._sources.get(kind.tag)
        if source is None:
            fetcher = self._require_fetcher()
            logger.info(f"Fetching {kind.tag} metadata")
            source = fetcher(kind.tag)
            self._sources[kind.tag] = source
        return source

    # ---------------- Containers ---------------- #

    def containers_for(self, kind: "MetadataKind | str") -> List[Container]:
        """Return the parsed containers for one kind, parsing on first use.

        Raises:
            UnknownKindError: ``kind`` is not one of the seven metadata kinds.
            ParseError: The source document cannot be parsed.
        """
        kind = MetadataKind.parse(kind)
        containers = self._containers.get(kind)
        if containers is None:
            containers = parse_metadata(
                self._source_for(kind), config=self.config, kind=kind.tag
            )
            logger.debug(f"Parsed {len(containers)} {kind.tag} containers")
            self._containers[kind] = containers
        return containers

    def containers(self) -> Dict[MetadataKind, List[Container]]:
        """Resolve and return containers for every kind."""
        return {kind: self.containers_for(kind) for kind in MetadataKind}

    # ---------------- System data ---------------- #

    def _system(self) -> SystemContainer:
        for container in self.containers_for(MetadataKind.SYSTEM):
            if isinstance(container, SystemContainer) and container.rows:
                return container
        raise MissingSystemDataError("SYSTEM metadata has no system row")

    @property
    def version(self) -> str:
        return self._system().version

    @property
    def date(self) -> str:
        return self._system().date

    @property
    def system_id(self) -> str:
        return self._system().system_id

    def is_current(
        self,
        current_timestamp: Optional[str] = None,
        current_version: Optional[str] = None,
    ) -> bool:
        """Whether the loaded metadata matches what the server now publishes.

        Versions decide when both the candidate and the loaded version are
        non-empty. Otherwise a supplied timestamp (anything but ``None``) must
        equal the loaded date, and with no timestamp the metadata counts as
        current.
        """
        if current_version and self.version:
            return current_version == self.version
        if current_timestamp is not None:
            return current_timestamp == self.date
        return True

    # ---------------- Tree ---------------- #

    def tree(self) -> MetadataTree:
        """Build (once) and return the resource tree."""
        if self._tree is None:
            self._tree = build_tree(self.containers())
        return self._tree

    def resource(self, name: str) -> Optional[ResourceNode]:
        return self.tree().get(name)

    def print_tree(self, out: Optional[TextIO] = None) -> None:
        out = out or sys.stdout
        for resource in self.tree().values():
            resource.print_tree(out)
