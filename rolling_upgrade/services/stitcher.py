"""Stitch per-release snapshots of a schema's migration graph together.

Every release records the full definition graph of each schema as it stood
at that release. The stitcher reads those snapshots for a set of release
tags, checks that history only ever grew, merges them into one canonical
graph and reports the frontier (leaf) migrations at each tag.

Architecture:
    tags ──► [ThreadPoolExecutor] ──► get_snapshot(schema, tag) × N
                                            │
                                   sort by tag version
                                            │
             validate_snapshot ◄────────────┤
             check_superset(prev, next) ◄───┤
                                            ▼
                         union of definitions + leaves per tag
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from rolling_upgrade.core.graph import check_superset, leaf_ids, validate_snapshot
from rolling_upgrade.core.models import (
    LeafSet,
    MigrationDefinition,
    SchemaGraphSnapshot,
    StitchedGraph,
)
from rolling_upgrade.core.version import Version
from rolling_upgrade.ports.repositories import DefinitionSourceProtocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class MigrationGraphStitcher:
    """Build canonical migration graphs and per-tag leaf sets for a schema.

    Stateless between calls; safe to share between threads.
    """

    def __init__(
        self,
        definition_source: DefinitionSourceProtocol,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        """Initialize the stitcher.

        Args:
            definition_source: Where per-tag snapshots are read from.
            max_workers: Upper bound on concurrent snapshot fetches.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._source = definition_source
        self._max_workers = max_workers

    def resolve_leaf_sets(self, schema_name: str, tags: Sequence[str]) -> dict[str, LeafSet]:
        """Resolve the frontier migrations of a schema at every tag.

        Args:
            schema_name: Name of the schema.
            tags: Release tags of the form "v{major}.{minor}.0".

        Returns:
            Mapping of tag to LeafSet, in ascending tag order.

        Raises:
            DefinitionFetchError: Propagated unchanged from the definition source.
            InconsistentHistoryError: If snapshots are malformed or history shrank.
            CycleError: If a snapshot's parent edges form a cycle.
        """
        graph = self.stitch(schema_name, tags)
        return {tag: graph.leaf_set(tag) for tag in graph.leaf_ids_by_tag}

    def stitch(self, schema_name: str, tags: Sequence[str]) -> StitchedGraph:
        """Merge the snapshots of `tags` into one canonical graph.

        Leaves are computed from each tag's own snapshot, never from the
        union: migrations authored after a release must not show up as that
        release's leaves.
        """
        snapshots = self._fetch_snapshots(schema_name, _sort_tags(tags))

        definitions: dict[int, MigrationDefinition] = {}
        leaf_ids_by_tag: dict[str, tuple[int, ...]] = {}
        previous: SchemaGraphSnapshot | None = None

        for snapshot in snapshots:
            validate_snapshot(snapshot)
            if previous is not None:
                check_superset(previous, snapshot)

            for definition in snapshot.definitions:
                definitions.setdefault(definition.id, definition)
            leaf_ids_by_tag[snapshot.tag] = leaf_ids(snapshot)
            previous = snapshot

        logger.debug(
            f"Stitched {schema_name}: {len(definitions)} definitions across {len(snapshots)} tags"
        )
        return StitchedGraph(
            schema_name=schema_name,
            definitions={key: definitions[key] for key in sorted(definitions)},
            leaf_ids_by_tag=leaf_ids_by_tag,
        )

    def _fetch_snapshots(self, schema_name: str, tags: list[str]) -> list[SchemaGraphSnapshot]:
        if not tags:
            return []
        if len(tags) == 1 or self._max_workers == 1:
            return [self._source.get_snapshot(schema_name, tag) for tag in tags]

        workers = min(self._max_workers, len(tags))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="snapshot-fetch") as pool:
            futures = [pool.submit(self._source.get_snapshot, schema_name, tag) for tag in tags]
            # result() re-raises the source's own exception; futures keep tag order
            return [future.result() for future in futures]


def _sort_tags(tags: Sequence[str]) -> list[str]:
    """De-duplicate tags and order them by release version."""
    return sorted(set(tags), key=Version.parse)
