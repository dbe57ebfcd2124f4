#!/usr/bin/env python3
"""
Interactive prerequisite graph engine.

One GraphEngine owns a course index, the current immutable GraphState, the
depth map for the active root and the layout settings.  Every user operation
replaces the snapshot in one step, reconciles edges, notifies listeners and
restarts the (cancelable) layout run.

Usage:
    engine = GraphEngine(settings=GraphSettings(animate=False))
    engine.initialize(load_courses("sfu-verified-courses.json"))
    engine.set_root("ECON 201")
    engine.click("ECON 201", "ECON 103")
"""

from collections import deque
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from course_store import CourseIndex, CourseRecord
from depth_index import build_depths
from graph_settings import FRAME_SECONDS, HIGHLIGHT_SECONDS, GraphSettings
from graph_state import (
    GraphState, click, close_course, edge_list, hover_in, hover_out, initial_state,
    open_course, reconcile_edges, set_highlight, set_hover_pin, with_positions,
)
from layout_engine import RelaxationRun
from prereq_groups import course_label, describe_requirement, format_prerequisites
from requirement_tree import norm_course
from scheduling import ManualScheduler

Listener = Callable[[GraphState], None]


class GraphEngine:
    """
    Owner of one interactive graph.

    Args:
        index: Course lookup map (may be supplied later via initialize())
        settings: Layout and display settings
        scheduler: Object with call_later(delay, callback); a ManualScheduler
            is used when omitted
        anchor: Fixed position of the root node
    """

    def __init__(self, index: Optional[CourseIndex] = None,
                 settings: Optional[GraphSettings] = None,
                 scheduler=None,
                 anchor: Tuple[float, float] = (0.0, 0.0)):
        self.index = index if index is not None else CourseIndex()
        self.settings = settings if settings is not None else GraphSettings()
        self.scheduler = scheduler if scheduler is not None else ManualScheduler()
        self.anchor = anchor
        self.depths: Dict[str, int] = {}
        self._state: Optional[GraphState] = None
        self._listeners: List[Listener] = []
        self._run: Optional[RelaxationRun] = None
        self._highlight_timers: Dict[str, object] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, courses: Union[CourseIndex, Iterable[CourseRecord]]) -> None:
        """Replace the course universe; any current graph is discarded"""
        self.index = courses if isinstance(courses, CourseIndex) else CourseIndex(courses)
        self._reset()
        self._state = None
        self.depths = {}

    def set_root(self, root_id: str) -> GraphState:
        """Reset to a single pinned root and rebuild depths"""
        root_id = norm_course(root_id)
        self._reset()
        self.depths = build_depths(self.index, root_id)
        self._state = None
        return self._commit(initial_state(self.index, root_id, self.anchor))

    def _reset(self) -> None:
        if self._run is not None:
            self._run.cancel()
            self._run = None
        for handle in self._highlight_timers.values():
            handle.cancel()
        self._highlight_timers.clear()

    def dispose(self) -> None:
        """Stop layout and highlight timers and drop listeners; the snapshot stays readable"""
        self._reset()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    @property
    def root_id(self) -> Optional[str]:
        return self._state.root_id if self._state is not None else None

    def snapshot(self) -> GraphState:
        if self._state is None:
            raise RuntimeError("No root selected; call set_root() first")
        return self._state

    @property
    def layout_running(self) -> bool:
        return self._run is not None

    def depth_of(self, course_id: str) -> int:
        return self.depths.get(course_id, 0)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with every new snapshot; returns an unsubscribe"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def open(self, parent_id: str, course_id: str) -> GraphState:
        state = self.snapshot()
        course_id = norm_course(course_id)
        new_state = open_course(state, self.index, norm_course(parent_id), course_id)
        self._commit(new_state)
        if course_id in self._state.nodes:
            self._schedule_highlight_clear(course_id)
        return self._state

    def close(self, course_id: str, parent_id: Optional[str] = None) -> GraphState:
        state = self.snapshot()
        parent = norm_course(parent_id) if parent_id is not None else None
        return self._commit(close_course(state, self.index, norm_course(course_id), parent))

    def click(self, parent_id: str, course_id: str) -> GraphState:
        """Open or close course_id under parent_id depending on its current state"""
        state = self.snapshot()
        course_id = norm_course(course_id)
        new_state = click(state, self.index, norm_course(parent_id), course_id)
        opened = course_id in new_state.nodes and new_state.nodes[course_id].highlight
        self._commit(new_state)
        if opened:
            self._schedule_highlight_clear(course_id)
        return self._state

    def hover_in(self, parent_id: str, course_id: str) -> GraphState:
        state = self.snapshot()
        return self._commit(hover_in(state, self.index, norm_course(parent_id),
                                     norm_course(course_id)))

    def hover_out(self, parent_id: str, course_id: str) -> GraphState:
        state = self.snapshot()
        return self._commit(hover_out(state, norm_course(parent_id), norm_course(course_id)))

    def pin_hover(self, course_id: str, pinned: bool = True) -> GraphState:
        state = self.snapshot()
        return self._commit(set_hover_pin(state, norm_course(course_id), pinned))

    def expand(self, max_depth: Optional[int] = None) -> GraphState:
        """
        Open every prerequisite reachable from the root in a single update.

        Args:
            max_depth: Stop after this many levels below the root (None = all)
        """
        state = self.snapshot()
        queue = deque([(state.root_id, 0)])
        seen = {state.root_id}
        while queue:
            current, level = queue.popleft()
            if max_depth is not None and level >= max_depth:
                continue
            for child in self.index.list_direct_prerequisite_ids(current):
                state = open_course(state, self.index, current, child)
                if child not in seen:
                    seen.add(child)
                    queue.append((child, level + 1))
        for node_id in list(state.nodes):
            state = set_highlight(state, node_id, False)
        return self._commit(state)

    def update_settings(self, **changes) -> GraphSettings:
        """Merge new settings and lay out again"""
        self.settings = self.settings.merged(**changes)
        if self._state is not None:
            self._start_layout()
        return self.settings

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, new_state: GraphState) -> GraphState:
        """Install a new snapshot, reconcile, notify and relayout if it changed"""
        if new_state is self._state:
            return new_state
        self._state = reconcile_edges(new_state, self.index)
        self._emit()
        self._start_layout()
        return self._state

    def _start_layout(self) -> None:
        if self._run is not None:
            self._run.cancel()
        run = RelaxationRun(self._state, self.depths, self.index, self.settings,
                            self.scheduler, self._make_frame_handler(), FRAME_SECONDS)
        self._run = run
        run.start()

    def _make_frame_handler(self):
        def on_frame(positions, done):
            self._state = with_positions(self._state, positions)
            if done:
                self._run = None
            self._emit()
        return on_frame

    def _schedule_highlight_clear(self, course_id: str) -> None:
        previous = self._highlight_timers.pop(course_id, None)
        if previous is not None:
            previous.cancel()

        def clear():
            self._highlight_timers.pop(course_id, None)
            if self._state is None:
                return
            updated = set_highlight(self._state, course_id, False)
            if updated is not self._state:
                self._state = updated
                self._emit()

        self._highlight_timers[course_id] = self.scheduler.call_later(HIGHLIGHT_SECONDS, clear)

    # ------------------------------------------------------------------
    # Renderer view
    # ------------------------------------------------------------------

    def node_details(self, course_id: str) -> Dict:
        """Card text for one node: title, status, prerequisite summary"""
        course_id = norm_course(course_id)
        course = self.index.get_course(course_id)
        groups = self.index.extract_alternative_groups(course_id)
        show_grade = self.settings.show_min_grade
        return {
            "id": course_id,
            "title": course.title if course is not None else None,
            "status": self.index.prerequisite_status(course_id),
            "summary": format_prerequisites(groups) if groups else "",
            "requirements": describe_requirement(
                course.requirements, show_grade) if course is not None else "",
            "groups": [[course_label(item, show_grade) for item in row] for row in groups],
        }

    def view(self) -> Dict:
        """Nodes and edges as plain dicts for a renderer"""
        state = self.snapshot()
        nodes = []
        for node_id in sorted(state.nodes):
            node = state.nodes[node_id]
            nodes.append({
                "id": node.id,
                "title": node.title,
                "subtitle": node.subtitle,
                "x": node.x,
                "y": node.y,
                "width": node.width,
                "height": node.height,
                "depth": self.depth_of(node.id),
                "persisted": node.persisted,
                "highlight": node.highlight,
                "pinned": node.pinned or node.hover_pinned,
                "primary_parent_id": node.primary_parent_id,
                "status": self.index.prerequisite_status(node.id),
            })
        edges = [
            {"source": e.source, "target": e.target, "ephemeral": e.ephemeral}
            for e in sorted(edge_list(state), key=lambda e: e.key)
        ]
        return {"root": state.root_id, "nodes": nodes, "edges": edges,
                "layout_running": self.layout_running}
