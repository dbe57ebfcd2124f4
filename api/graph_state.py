#!/usr/bin/env python3
"""
Graph state for the interactive prerequisite view.

A GraphState is an immutable snapshot.  Every transition below returns a new
snapshot (or the same one when nothing changed) and never mutates its input,
so readers holding an older snapshot never see a half-applied operation.

Edges point from a course to one of its prerequisites: (parent, child).
"""

from collections import deque
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

from graph_settings import NODE_SIZE, ROOT_SIZE

EdgeKey = Tuple[str, str]


@dataclass(frozen=True)
class GraphNode:
    id: str
    subtitle: Optional[str] = None
    persisted: bool = False
    primary_parent_id: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: float = NODE_SIZE[0]
    height: float = NODE_SIZE[1]
    pinned: bool = False
    hover_pinned: bool = False
    fx: Optional[float] = None
    fy: Optional[float] = None
    highlight: bool = False

    @property
    def title(self) -> str:
        return self.id

    @property
    def fixed(self) -> bool:
        """True when the node is held at (fx, fy)"""
        return (self.pinned or self.hover_pinned) and self.fx is not None and self.fy is not None


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    ephemeral: bool = False

    @property
    def key(self) -> EdgeKey:
        return (self.source, self.target)


@dataclass(frozen=True)
class GraphState:
    root_id: str
    nodes: Dict[str, GraphNode] = field(default_factory=dict)
    edges: Dict[EdgeKey, GraphEdge] = field(default_factory=dict)
    reopen_memory: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    detached: FrozenSet[EdgeKey] = frozenset()

    def present_ids(self) -> Set[str]:
        return set(self.nodes)

    def persisted_ids(self) -> Set[str]:
        return {node_id for node_id, node in self.nodes.items() if node.persisted}

    def is_attached(self, parent_id: str, course_id: str) -> bool:
        edge = self.edges.get((parent_id, course_id))
        return edge is not None and not edge.ephemeral


def _subtitle(index, course_id: str) -> Optional[str]:
    course = index.get_course(course_id)
    return course.title if course is not None and course.title else None


def initial_state(index, root_id: str, anchor: Tuple[float, float] = (0.0, 0.0)) -> GraphState:
    """Single persisted, pinned root at the anchor; everything else empty"""
    cx, cy = anchor
    root = GraphNode(
        id=root_id,
        subtitle=_subtitle(index, root_id),
        persisted=True,
        x=cx,
        y=cy,
        width=ROOT_SIZE[0],
        height=ROOT_SIZE[1],
        pinned=True,
        fx=cx,
        fy=cy,
    )
    return GraphState(root_id=root_id, nodes={root_id: root})


def _new_node(index, course_id: str, parent_id: str, persisted: bool,
              highlight: bool = False) -> GraphNode:
    return GraphNode(
        id=course_id,
        subtitle=_subtitle(index, course_id),
        persisted=persisted,
        primary_parent_id=parent_id,
        highlight=highlight,
    )


def _persist(index, nodes: Dict[str, GraphNode], course_id: str, parent_id: str,
             highlight: Optional[bool] = None) -> None:
    """Upsert a persisted node; an existing primary parent is kept"""
    node = nodes.get(course_id)
    if node is None:
        nodes[course_id] = _new_node(index, course_id, parent_id, True, bool(highlight))
        return
    changes = {}
    if not node.persisted:
        changes["persisted"] = True
        changes["primary_parent_id"] = parent_id
    if highlight is not None:
        changes["highlight"] = highlight
    if changes:
        nodes[course_id] = replace(node, **changes)


# ============================================================================
# OPEN / CLOSE
# ============================================================================


def open_course(state: GraphState, index, parent_id: str, course_id: str) -> GraphState:
    """
    Reveal course_id under parent_id and restore any remembered subtree.

    Opening an already persisted course re-attaches it to parent_id and
    refreshes its highlight; its primary parent is never overwritten.
    """
    if parent_id not in state.nodes:
        return state

    nodes = dict(state.nodes)
    edges = dict(state.edges)
    memory = dict(state.reopen_memory)
    detached = set(state.detached)

    _persist(index, nodes, course_id, parent_id, highlight=True)
    edges[(parent_id, course_id)] = GraphEdge(parent_id, course_id)
    detached.discard((parent_id, course_id))

    visited = {course_id}
    queue = deque([course_id])
    while queue:
        current = queue.popleft()
        remembered = memory.pop(current, None)
        if not remembered:
            continue
        for child in sorted(remembered):
            if child in visited:
                continue
            visited.add(child)
            _persist(index, nodes, child, current)
            edges[(current, child)] = GraphEdge(current, child)
            detached.discard((current, child))
            queue.append(child)

    return replace(state, nodes=nodes, edges=edges, reopen_memory=memory,
                   detached=frozenset(detached))


def _live_parent_count(index, child: str, persisted: Set[str],
                       removal: Set[str], detached: Set[EdgeKey]) -> int:
    count = 0
    for parent in persisted:
        if parent in removal or (parent, child) in detached:
            continue
        if child in index.list_direct_prerequisite_ids(parent):
            count += 1
    return count


def removal_set(state: GraphState, index, course_id: str,
                detached: Optional[Set[EdgeKey]] = None) -> Tuple[Set[str], Set[str]]:
    """
    Nodes removed by closing course_id, and the direct children among them.

    A descendant is removed, and the cascade continues through it, only when
    no persisted node outside the removal set still lists it.
    """
    detached = set(state.detached) if detached is None else detached
    persisted = state.persisted_ids()
    removal = {course_id}
    direct_closed: Set[str] = set()
    queue = deque([course_id])
    while queue:
        current = queue.popleft()
        for child in index.list_direct_prerequisite_ids(current):
            if child not in persisted or child == state.root_id:
                continue
            if _live_parent_count(index, child, persisted, removal, detached) == 0:
                if child not in removal:
                    removal.add(child)
                    queue.append(child)
                if current == course_id:
                    direct_closed.add(child)
    direct_closed.discard(course_id)
    return removal, direct_closed


def close_course(state: GraphState, index, course_id: str,
                 parent_id: Optional[str] = None) -> GraphState:
    """
    Close a persisted course, cascading into descendants with no other parent.

    When parent_id is given and another live parent still holds the course,
    only the parent_id edge is dropped and the pair is marked detached.
    Closing the root or a course that is not persisted is a no-op.
    """
    node = state.nodes.get(course_id)
    if node is None or not node.persisted or course_id == state.root_id:
        return state

    detached = set(state.detached)
    persisted = state.persisted_ids()

    if parent_id is not None and parent_id in state.nodes:
        detached.add((parent_id, course_id))
        if _live_parent_count(index, course_id, persisted, {course_id}, detached) > 0:
            edges = dict(state.edges)
            edges.pop((parent_id, course_id), None)
            return replace(state, edges=edges, detached=frozenset(detached))

    removal, direct_closed = removal_set(state, index, course_id, detached)

    nodes = {nid: n for nid, n in state.nodes.items() if nid not in removal}
    edges = {
        key: edge for key, edge in state.edges.items()
        if edge.source not in removal and edge.target not in removal
    }
    memory = dict(state.reopen_memory)
    if direct_closed:
        memory[course_id] = frozenset(memory.get(course_id, frozenset()) | direct_closed)
    detached = {pair for pair in detached if pair[0] not in removal and pair[1] not in removal}

    return replace(state, nodes=nodes, edges=edges, reopen_memory=memory,
                   detached=frozenset(detached))


def click(state: GraphState, index, parent_id: str, course_id: str) -> GraphState:
    """Toggle course_id under parent_id: close when attached, open otherwise"""
    node = state.nodes.get(course_id)
    if node is not None and node.persisted and state.is_attached(parent_id, course_id):
        return close_course(state, index, course_id, parent_id)
    return open_course(state, index, parent_id, course_id)


# ============================================================================
# HOVER PREVIEW
# ============================================================================


def hover_in(state: GraphState, index, parent_id: str, course_id: str) -> GraphState:
    """Preview course_id under parent_id with a non-persisted node"""
    if parent_id not in state.nodes:
        return state
    nodes = dict(state.nodes)
    edges = dict(state.edges)
    node = nodes.get(course_id)
    if node is None:
        nodes[course_id] = _new_node(index, course_id, parent_id, False, highlight=True)
        edges.setdefault((parent_id, course_id), GraphEdge(parent_id, course_id, ephemeral=True))
    elif not node.highlight:
        nodes[course_id] = replace(node, highlight=True)
    else:
        return state
    return replace(state, nodes=nodes, edges=edges)


def hover_out(state: GraphState, parent_id: str, course_id: str) -> GraphState:
    """End a preview; a node persisted in the meantime is kept"""
    nodes = dict(state.nodes)
    edges = dict(state.edges)
    edge = edges.get((parent_id, course_id))
    if edge is not None and edge.ephemeral:
        del edges[(parent_id, course_id)]

    node = nodes.get(course_id)
    if node is not None:
        if not node.persisted:
            del nodes[course_id]
            edges = {k: e for k, e in edges.items() if course_id not in k}
        elif node.highlight:
            nodes[course_id] = replace(node, highlight=False)

    if nodes == state.nodes and edges == state.edges:
        return state
    return replace(state, nodes=nodes, edges=edges)


# ============================================================================
# RECONCILIATION AND SMALL UPDATES
# ============================================================================


def reconcile_edges(state: GraphState, index) -> GraphState:
    """
    Ensure a persistent edge between every pair of present, persisted,
    prerequisite-related nodes, and drop edges whose endpoints are gone.
    Idempotent.

    Hover-preview nodes are skipped on both ends. Linking them would turn
    the single ephemeral hover edge into a permanent one, and would tie the
    preview to every other visible parent that lists it.
    """
    edges = {
        key: edge for key, edge in state.edges.items()
        if edge.source in state.nodes and edge.target in state.nodes
    }
    persisted = state.persisted_ids()
    for parent in state.nodes:
        if parent not in persisted:
            continue
        for child in index.list_direct_prerequisite_ids(parent):
            if child not in persisted or (parent, child) in state.detached:
                continue
            edge = edges.get((parent, child))
            if edge is None or edge.ephemeral:
                edges[(parent, child)] = GraphEdge(parent, child)

    if edges == state.edges:
        return state
    return replace(state, edges=edges)


def set_highlight(state: GraphState, course_id: str, value: bool) -> GraphState:
    node = state.nodes.get(course_id)
    if node is None or node.highlight == value:
        return state
    nodes = dict(state.nodes)
    nodes[course_id] = replace(node, highlight=value)
    return replace(state, nodes=nodes)


def set_hover_pin(state: GraphState, course_id: str, pinned: bool) -> GraphState:
    """Hold a node at its current position while the pointer rests on it"""
    node = state.nodes.get(course_id)
    if node is None or node.hover_pinned == pinned:
        return state
    if pinned:
        updated = replace(node, hover_pinned=True, fx=node.x, fy=node.y)
    elif node.pinned:
        updated = replace(node, hover_pinned=False)
    else:
        updated = replace(node, hover_pinned=False, fx=None, fy=None)
    nodes = dict(state.nodes)
    nodes[course_id] = updated
    return replace(state, nodes=nodes)


def with_positions(state: GraphState,
                   positions: Dict[str, Tuple[float, float]]) -> GraphState:
    """Snapshot with node coordinates replaced; unknown ids are ignored"""
    nodes = dict(state.nodes)
    for node_id, (x, y) in positions.items():
        node = nodes.get(node_id)
        if node is not None:
            nodes[node_id] = replace(node, x=x, y=y)
    return replace(state, nodes=nodes)


def edge_list(state: GraphState) -> Iterable[GraphEdge]:
    return list(state.edges.values())
