"""
In-Memory R-tree.

Provides the spatial index shared by the region tracker and the feature
index:
- Node pool keyed by integer node identifiers (no object references
  between nodes, parents and children are looked up by id)
- Linear split on overflow, condense-and-reinsert on underflow
- Intersection queries through visitors
- Guided walks through query strategies (used by eviction)
- Node read/write/delete commands, so callers can attach per-node
  metadata without changing the tree

Leaf entries carry an integer identifier and an opaque payload.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from geocache.envelope import Envelope
from geocache.exceptions import SpatialIndexError

logger = logging.getLogger(__name__)

NodeCommand = Callable[["Node"], None]


@dataclass
class Entry:
    """
    A slot in a node.

    Attributes:
        envelope: Bounding rectangle of the child or data item
        identifier: Child node id (index nodes) or data id (leaves)
        data: Payload of a data item, None in index nodes
    """

    envelope: Envelope
    identifier: int
    data: Any = None


@dataclass
class Node:
    """
    R-tree node.

    Attributes:
        identifier: Node id in the pool
        level: 0 for leaves, height above the leaves otherwise
        entries: Children (index nodes) or data items (leaves)
        parent: Parent node id, None for the root
    """

    identifier: int
    level: int
    entries: List[Entry] = field(default_factory=list)
    parent: Optional[int] = None

    @property
    def is_leaf(self) -> bool:
        return self.level == 0

    @property
    def children_count(self) -> int:
        return len(self.entries)

    @property
    def mbr(self) -> Optional[Envelope]:
        """Envelope of all entries, None for an empty node."""
        return Envelope.covering([e.envelope for e in self.entries])

    def child_identifier(self, i: int) -> int:
        return self.entries[i].identifier


class Visitor:
    """Receives nodes and data items during a query. Override what you need."""

    def visit_node(self, node: Node) -> None:
        pass

    def visit_data(self, entry: Entry) -> None:
        pass


class QueryStrategy:
    """Guides a root-to-leaf walk through the tree."""

    def next_node(self, tree: "RTree", node: Node) -> Optional[int]:
        """
        Decide where to go from a node.

        Returns:
            Identifier of the next node to visit, None to stop
        """
        raise NotImplementedError


class _CollectingVisitor(Visitor):
    def __init__(self):
        self.entries: List[Entry] = []

    def visit_data(self, entry: Entry) -> None:
        self.entries.append(entry)


class RTree:
    """
    Linear-split R-tree over planar envelopes.

    Not thread-safe; owners serialize access.
    """

    def __init__(
        self,
        leaf_capacity: int = 10,
        index_capacity: int = 10,
        fill_factor: float = 0.4,
    ):
        """
        Initialize an empty tree.

        Args:
            leaf_capacity: Maximum data items per leaf
            index_capacity: Maximum children per index node
            fill_factor: Minimum fill of non-root nodes, as a fraction of capacity
        """
        if leaf_capacity < 2 or index_capacity < 2:
            raise ValueError(
                f"capacities must be >= 2, got leaf={leaf_capacity}, "
                f"index={index_capacity}"
            )
        if not 0 < fill_factor <= 0.5:
            raise ValueError(f"fill_factor must be in (0, 0.5], got {fill_factor}")

        self.leaf_capacity = leaf_capacity
        self.index_capacity = index_capacity
        self.fill_factor = fill_factor

        self._read_commands: List[NodeCommand] = []
        self._write_commands: List[NodeCommand] = []
        self._delete_commands: List[NodeCommand] = []

        self._nodes: Dict[int, Node] = {}
        self._next_node_id = 0
        self._data_count = 0
        self._root_id = self._new_node(level=0).identifier

    # ------------------------------------------------------------------
    # Node commands
    # ------------------------------------------------------------------

    def add_read_node_command(self, command: NodeCommand) -> None:
        """Run command on every node read by a query, in registration order."""
        self._read_commands.append(command)

    def add_write_node_command(self, command: NodeCommand) -> None:
        """Run command on every node created or modified."""
        self._write_commands.append(command)

    def add_delete_node_command(self, command: NodeCommand) -> None:
        """Run command on every node removed from the pool."""
        self._delete_commands.append(command)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def root(self) -> Node:
        return self._nodes[self._root_id]

    @property
    def height(self) -> int:
        return self.root.level + 1

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def bounds(self) -> Optional[Envelope]:
        return self.root.mbr

    def node(self, identifier: int) -> Node:
        """Look up a node by id."""
        try:
            return self._nodes[identifier]
        except KeyError:
            raise SpatialIndexError(
                f"Unknown node {identifier}", {"node_count": len(self._nodes)}
            ) from None

    def __len__(self) -> int:
        return self._data_count

    def __iter__(self) -> Iterator[Entry]:
        """Iterate over every data entry."""
        for node in list(self._nodes.values()):
            if node.is_leaf:
                yield from list(node.entries)

    def get_statistics(self) -> Dict[str, Any]:
        """Get tree shape statistics."""
        leaves = [n for n in self._nodes.values() if n.is_leaf]
        return {
            "data_count": self._data_count,
            "node_count": len(self._nodes),
            "leaf_count": len(leaves),
            "height": self.height,
            "leaf_capacity": self.leaf_capacity,
            "index_capacity": self.index_capacity,
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert_data(self, data: Any, envelope: Envelope, identifier: int) -> None:
        """
        Insert a data item.

        Args:
            data: Opaque payload returned by queries
            envelope: Bounding rectangle of the item
            identifier: Integer id, used with the envelope to delete the item
        """
        self._insert_entry(Entry(envelope, identifier, data))
        self._data_count += 1

    def delete_data(self, envelope: Envelope, identifier: int) -> bool:
        """
        Delete a data item.

        Args:
            envelope: Envelope the item was inserted with
            identifier: Id the item was inserted with

        Returns:
            True if the item was found and removed
        """
        found = self._find_leaf(envelope, identifier)
        if found is None:
            return False

        leaf, position = found
        del leaf.entries[position]
        self._data_count -= 1
        self._condense_tree(leaf)
        return True

    def clear(self) -> None:
        """Drop every node and start over with an empty root leaf."""
        for node in list(self._nodes.values()):
            self._delete_node(node)
        self._data_count = 0
        self._root_id = self._new_node(level=0).identifier

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def intersection_query(self, envelope: Envelope, visitor: Visitor) -> None:
        """
        Visit every node and data item intersecting an envelope.

        Nodes are reported to read commands as they are traversed.
        """
        stack = [self._root_id]
        while stack:
            node = self._read_node(stack.pop())
            visitor.visit_node(node)

            for entry in node.entries:
                if not entry.envelope.intersects(envelope):
                    continue
                if node.is_leaf:
                    visitor.visit_data(entry)
                else:
                    stack.append(entry.identifier)

    def query_intersecting(self, envelope: Envelope) -> List[Entry]:
        """Data entries intersecting an envelope."""
        visitor = _CollectingVisitor()
        self.intersection_query(envelope, visitor)
        return visitor.entries

    def query_strategy(self, strategy: QueryStrategy) -> None:
        """Walk the tree from the root as directed by a strategy."""
        node_id: Optional[int] = self._root_id
        while node_id is not None:
            node_id = strategy.next_node(self, self.node(node_id))

    def read_leaf(self, node: Node) -> List[Any]:
        """Payloads of every data item in a leaf."""
        if not node.is_leaf:
            raise SpatialIndexError(f"Node {node.identifier} is not a leaf")
        return [entry.data for entry in node.entries]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _capacity(self, node: Node) -> int:
        return self.leaf_capacity if node.is_leaf else self.index_capacity

    def _min_fill(self, node: Node) -> int:
        return max(1, int(self._capacity(node) * self.fill_factor))

    def _new_node(self, level: int, parent: Optional[int] = None) -> Node:
        node = Node(identifier=self._next_node_id, level=level, parent=parent)
        self._next_node_id += 1
        self._nodes[node.identifier] = node
        self._write_node(node)
        return node

    def _read_node(self, identifier: int) -> Node:
        node = self.node(identifier)
        for command in self._read_commands:
            command(node)
        return node

    def _write_node(self, node: Node) -> None:
        for command in self._write_commands:
            command(node)

    def _delete_node(self, node: Node) -> None:
        del self._nodes[node.identifier]
        for command in self._delete_commands:
            command(node)

    def _insert_entry(self, entry: Entry) -> None:
        leaf = self._choose_leaf(entry.envelope)
        leaf.entries.append(entry)
        self._adjust_tree(leaf)

    def _choose_leaf(self, envelope: Envelope) -> Node:
        """Descend by least enlargement, ties broken by smallest area."""
        node = self.root
        while not node.is_leaf:
            best = min(
                node.entries,
                key=lambda e: (e.envelope.enlargement(envelope), e.envelope.area),
            )
            node = self._nodes[best.identifier]
        return node

    def _adjust_tree(self, node: Node) -> None:
        """Propagate envelope changes and splits from a node up to the root."""
        while True:
            sibling = None
            if len(node.entries) > self._capacity(node):
                sibling = self._split(node)
            self._write_node(node)

            if node.parent is None:
                if sibling is not None:
                    self._grow_root(node, sibling)
                return

            parent = self._nodes[node.parent]
            self._update_parent_entry(parent, node)
            if sibling is not None:
                parent.entries.append(Entry(sibling.mbr, sibling.identifier))
                sibling.parent = parent.identifier
            node = parent

    def _grow_root(self, old_root: Node, sibling: Node) -> None:
        root = self._new_node(level=old_root.level + 1)
        root.entries = [
            Entry(old_root.mbr, old_root.identifier),
            Entry(sibling.mbr, sibling.identifier),
        ]
        old_root.parent = root.identifier
        sibling.parent = root.identifier
        self._root_id = root.identifier
        self._write_node(root)
        logger.debug(f"R-tree grew to height {self.height}")

    def _update_parent_entry(self, parent: Node, child: Node) -> None:
        for entry in parent.entries:
            if entry.identifier == child.identifier:
                entry.envelope = child.mbr
                return
        raise SpatialIndexError(
            f"Node {child.identifier} missing from parent {parent.identifier}"
        )

    def _split(self, node: Node) -> Node:
        """Linear split: move part of an overflowing node into a new sibling."""
        entries = node.entries
        seed_a, seed_b = self._pick_seeds(entries)
        group_a = [entries[seed_a]]
        group_b = [entries[seed_b]]
        mbr_a = entries[seed_a].envelope
        mbr_b = entries[seed_b].envelope
        remaining = [e for i, e in enumerate(entries) if i not in (seed_a, seed_b)]
        min_fill = self._min_fill(node)

        for i, entry in enumerate(remaining):
            left = len(remaining) - i
            if len(group_a) + left <= min_fill:
                group_a.extend(remaining[i:])
                break
            if len(group_b) + left <= min_fill:
                group_b.extend(remaining[i:])
                break

            grow_a = mbr_a.enlargement(entry.envelope)
            grow_b = mbr_b.enlargement(entry.envelope)
            if (grow_a, mbr_a.area, len(group_a)) <= (grow_b, mbr_b.area, len(group_b)):
                group_a.append(entry)
                mbr_a = mbr_a.union(entry.envelope)
            else:
                group_b.append(entry)
                mbr_b = mbr_b.union(entry.envelope)

        node.entries = group_a
        sibling = self._new_node(level=node.level, parent=node.parent)
        sibling.entries = group_b
        if not node.is_leaf:
            for entry in group_b:
                self._nodes[entry.identifier].parent = sibling.identifier
        self._write_node(sibling)
        return sibling

    @staticmethod
    def _pick_seeds(entries: List[Entry]) -> Tuple[int, int]:
        """Pair of entries with the greatest normalized separation."""
        best: Optional[Tuple[float, int, int]] = None
        axes = (
            (lambda e: e.min_x, lambda e: e.max_x),
            (lambda e: e.min_y, lambda e: e.max_y),
        )
        for low_of, high_of in axes:
            lows = [low_of(e.envelope) for e in entries]
            highs = [high_of(e.envelope) for e in entries]
            highest_low = max(range(len(entries)), key=lambda i: lows[i])
            lowest_high = min(range(len(entries)), key=lambda i: highs[i])
            width = max(highs) - min(lows)
            separation = (
                (lows[highest_low] - highs[lowest_high]) / width if width > 0 else 0.0
            )
            if best is None or separation > best[0]:
                best = (separation, lowest_high, highest_low)

        _, a, b = best
        if a == b:
            b = 1 if a == 0 else 0
        return a, b

    def _find_leaf(
        self, envelope: Envelope, identifier: int
    ) -> Optional[Tuple[Node, int]]:
        stack = [self._root_id]
        while stack:
            node = self._nodes[stack.pop()]
            for position, entry in enumerate(node.entries):
                if node.is_leaf:
                    if entry.identifier == identifier and entry.envelope == envelope:
                        return node, position
                elif entry.envelope.contains(envelope):
                    stack.append(entry.identifier)
        return None

    def _condense_tree(self, leaf: Node) -> None:
        """Remove underfull nodes on the path to the root and reinsert their data."""
        orphans: List[Entry] = []
        node = leaf

        while node.parent is not None:
            parent = self._nodes[node.parent]
            if len(node.entries) < self._min_fill(node):
                parent.entries = [
                    e for e in parent.entries if e.identifier != node.identifier
                ]
                orphans.extend(self._dissolve(node))
            else:
                self._update_parent_entry(parent, node)
                self._write_node(node)
            node = parent

        root = self.root
        if not root.is_leaf and not root.entries:
            self._delete_node(root)
            self._root_id = self._new_node(level=0).identifier
        else:
            self._write_node(root)

        for entry in orphans:
            self._insert_entry(entry)

        self._shrink_root()

    def _dissolve(self, node: Node) -> List[Entry]:
        """Delete a subtree and return its data entries."""
        data: List[Entry] = []
        stack = [node]
        while stack:
            current = stack.pop()
            if current.is_leaf:
                data.extend(current.entries)
            else:
                stack.extend(self._nodes[e.identifier] for e in current.entries)
            self._delete_node(current)
        return data

    def _shrink_root(self) -> None:
        root = self.root
        while not root.is_leaf and len(root.entries) == 1:
            child = self._nodes[root.entries[0].identifier]
            self._delete_node(root)
            child.parent = None
            self._root_id = child.identifier
            root = child
