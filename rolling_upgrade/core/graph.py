"""Integrity checks and frontier computation for migration definition graphs.

All functions here are pure and operate on a single SchemaGraphSnapshot or a
pair of consecutive snapshots. Edges point from parent to child: a parent
must be applied before any of its children.
"""

from __future__ import annotations

from collections import Counter

from rolling_upgrade.core.errors import CycleError, InconsistentHistoryError
from rolling_upgrade.core.models import SchemaGraphSnapshot

_WHITE, _GRAY, _BLACK = 0, 1, 2


def validate_snapshot(snapshot: SchemaGraphSnapshot) -> None:
    """Check that a snapshot is a well-formed DAG.

    Raises:
        InconsistentHistoryError: On duplicate IDs, definitions filed under the
            wrong schema, or parents missing from the snapshot.
        CycleError: If parent edges form a cycle.
    """
    counts = Counter(definition.id for definition in snapshot.definitions)
    duplicates = sorted(migration_id for migration_id, count in counts.items() if count > 1)
    if duplicates:
        raise InconsistentHistoryError(
            snapshot.schema_name, snapshot.tag, f"duplicate migration IDs {duplicates}"
        )

    ids = snapshot.ids
    for definition in snapshot.definitions:
        if definition.schema_name != snapshot.schema_name:
            raise InconsistentHistoryError(
                snapshot.schema_name,
                snapshot.tag,
                f"migration {definition.id} belongs to schema {definition.schema_name!r}",
            )
        missing = [parent for parent in definition.parents if parent not in ids]
        if missing:
            raise InconsistentHistoryError(
                snapshot.schema_name,
                snapshot.tag,
                f"migration {definition.id} references unknown parents {missing}",
            )

    cycle = find_cycle(snapshot)
    if cycle:
        raise CycleError(snapshot.schema_name, snapshot.tag, cycle)


def find_cycle(snapshot: SchemaGraphSnapshot) -> list[int] | None:
    """Find a cycle among parent edges using an iterative three-colour DFS.

    Returns:
        The cycle as a list of IDs starting and ending at the same node, or
        None if the graph is acyclic. Traversal order is ascending by ID so
        the reported cycle is reproducible.
    """
    parents = {definition.id: definition.parents for definition in snapshot.definitions}
    color = dict.fromkeys(parents, _WHITE)

    for root in sorted(parents):
        if color[root] != _WHITE:
            continue

        path: list[int] = [root]
        stack = [iter(parents[root])]
        color[root] = _GRAY

        while stack:
            node = next(stack[-1], None)
            if node is None:
                color[path.pop()] = _BLACK
                stack.pop()
                continue
            if node not in color:
                # Dangling parents are reported by validate_snapshot
                continue
            if color[node] == _GRAY:
                start = path.index(node)
                return path[start:] + [node]
            if color[node] == _WHITE:
                color[node] = _GRAY
                path.append(node)
                stack.append(iter(parents[node]))

    return None


def leaf_ids(snapshot: SchemaGraphSnapshot) -> tuple[int, ...]:
    """IDs in the snapshot with no child inside the same snapshot, ascending."""
    has_child = {parent for definition in snapshot.definitions for parent in definition.parents}
    return tuple(sorted(snapshot.ids - has_child))


def check_superset(earlier: SchemaGraphSnapshot, later: SchemaGraphSnapshot) -> None:
    """Check that `later` still contains everything recorded in `earlier`.

    Definitions are never removed or edited once published, so every node and
    parent edge of an earlier tag must reappear unchanged in every later tag.

    Raises:
        InconsistentHistoryError: If a node or edge disappeared or a
            definition changed between the two tags.
    """
    later_by_id = later.by_id()

    missing = sorted(earlier.ids - later_by_id.keys())
    if missing:
        raise InconsistentHistoryError(
            later.schema_name,
            later.tag,
            f"migrations {missing} present at {earlier.tag} are missing",
        )

    missing_edges = sorted(earlier.edges() - later.edges())
    if missing_edges:
        raise InconsistentHistoryError(
            later.schema_name,
            later.tag,
            f"parent edges {missing_edges} present at {earlier.tag} are missing",
        )

    for definition in earlier.definitions:
        if later_by_id[definition.id] != definition:
            raise InconsistentHistoryError(
                later.schema_name,
                later.tag,
                f"migration {definition.id} differs from its definition at {earlier.tag}",
            )
