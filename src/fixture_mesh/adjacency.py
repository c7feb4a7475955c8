"""
Position-deduplicated vertex graph for triangle meshes.

Vertex slots whose positions agree to ``precision`` decimals form one
vertex group (one logical point copied across triangle corners). Edges are
recorded between groups, never between raw slots, so every member of a
group sees the same neighbours.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import logging
import numpy as np

from fixture_mesh.contracts import POSITION_PRECISION, Mesh

logger = logging.getLogger(__name__)


@dataclass
class AdjacencyGraph:
    """Group-level adjacency with per-slot views.

    Attributes:
        group_of: ``(V,)`` group id of every vertex slot.
        representative: ``(G,)`` first slot of every group.
        edge_src, edge_dst: directed group edges, both directions present,
            unique and sorted by ``(src, dst)``.
    """

    group_of: np.ndarray
    representative: np.ndarray
    edge_src: np.ndarray
    edge_dst: np.ndarray

    @property
    def group_count(self) -> int:
        return int(len(self.representative))

    @property
    def vertex_count(self) -> int:
        return int(len(self.group_of))

    def group_members(self) -> List[np.ndarray]:
        """Slots of every group, in ascending slot order."""
        order = np.argsort(self.group_of, kind="stable")
        counts = np.bincount(self.group_of, minlength=self.group_count)
        return np.split(order, np.cumsum(counts)[:-1])

    def neighbor_groups(self, group: int) -> np.ndarray:
        lo, hi = np.searchsorted(self.edge_src, [group, group + 1])
        return self.edge_dst[lo:hi]

    def to_slot_maps(self) -> Tuple[Dict[int, Set[int]], Dict[int, List[int]]]:
        """Expand into ``(slot -> neighbour slots, slot -> group slots)`` maps."""
        members = self.group_members()
        member_lists = [[int(s) for s in m] for m in members]
        group_adj: List[Set[int]] = [set() for _ in range(self.group_count)]
        for g in range(self.group_count):
            for n in self.neighbor_groups(g):
                group_adj[g].update(member_lists[n])

        adjacency: Dict[int, Set[int]] = {}
        vertex_groups: Dict[int, List[int]] = {}
        for slot in range(self.vertex_count):
            g = int(self.group_of[slot])
            adjacency[slot] = set(group_adj[g])
            vertex_groups[slot] = member_lists[g]
        return adjacency, vertex_groups


def group_vertices(positions: np.ndarray, precision: int = POSITION_PRECISION) -> Tuple[np.ndarray, np.ndarray]:
    """Assign each slot a group id by its position rounded to *precision* decimals.

    Group ids are numbered in order of first appearance.

    Returns:
        (group_of, representative)
    """
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    if len(positions) == 0:
        return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64)

    # Adding 0.0 folds -0.0 into +0.0 so both land in one group.
    keys = np.round(positions, precision) + 0.0
    _, first, inverse = np.unique(keys, axis=0, return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)

    # Renumber so group ids follow first appearance in the buffer.
    order = np.argsort(first, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(len(order))
    return rank[inverse].astype(np.int64), first[order].astype(np.int64)


def build_adjacency(
    positions: np.ndarray,
    faces: Optional[np.ndarray] = None,
    precision: int = POSITION_PRECISION,
) -> AdjacencyGraph:
    """Build the group graph for *positions*.

    Without *faces* the buffer is read as a triangle soup. Triangle edges
    whose endpoints fall into the same group are ignored.
    """
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    if faces is None:
        faces = np.arange(len(positions) - len(positions) % 3, dtype=np.int64).reshape(-1, 3)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)

    group_of, representative = group_vertices(positions, precision)

    if len(faces) == 0:
        empty = np.zeros(0, dtype=np.int64)
        return AdjacencyGraph(group_of, representative, empty, empty.copy())

    gf = group_of[faces]
    a = np.concatenate([gf[:, 0], gf[:, 1], gf[:, 2]])
    b = np.concatenate([gf[:, 1], gf[:, 2], gf[:, 0]])
    keep = a != b
    src = np.concatenate([a[keep], b[keep]])
    dst = np.concatenate([b[keep], a[keep]])

    if len(src):
        pairs = np.unique(np.stack([src, dst], axis=1), axis=0)
        src, dst = pairs[:, 0].copy(), pairs[:, 1].copy()

    logger.debug(
        "Adjacency: %d slots, %d groups, %d directed edges",
        len(group_of), len(representative), len(src),
    )
    return AdjacencyGraph(group_of, representative, src, dst)


def mesh_adjacency(mesh: Mesh, precision: int = POSITION_PRECISION) -> AdjacencyGraph:
    return build_adjacency(mesh.positions, mesh.faces, precision)
