#!/usr/bin/env python3
"""
Ring layout for the interactive prerequisite graph.

Nodes sit on concentric rings around the pinned root, one ring per
prerequisite depth.  Angles are assigned deterministically; positions then
relax toward their ring targets while overlapping cards are pushed apart.
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from graph_settings import MIN_BOX_HEIGHT, GraphSettings
from graph_state import GraphState
from scheduling import CancelToken

TWO_PI = 2 * math.pi

Point = Tuple[float, float]


@dataclass
class LayoutPlan:
    center: Point
    angles: Dict[str, float] = field(default_factory=dict)
    radii: Dict[str, float] = field(default_factory=dict)
    targets: Dict[str, Point] = field(default_factory=dict)
    bound: float = 0.0


def ring_radius(depth: int, settings: GraphSettings) -> float:
    return settings.ring_base + depth * settings.ring_step


def ring_radii(state: GraphState, depths: Dict[str, int],
               settings: GraphSettings) -> Dict[int, float]:
    """
    Radius per occupied depth.  A ring whose padded card widths exceed its
    circumference is widened until they fit.
    """
    widths: Dict[int, float] = defaultdict(float)
    for node_id, node in state.nodes.items():
        if node_id == state.root_id:
            continue
        widths[depths.get(node_id, 0)] += node.width + settings.sep_padding
    return {
        depth: max(ring_radius(depth, settings), total / TWO_PI)
        for depth, total in widths.items()
    }


def cooling_factor(step: int, iterations: int) -> float:
    """Step-size multiplier falling from 1 to 0 over a run"""
    if iterations <= 0:
        return 0.0
    remaining = max(0.0, 1.0 - step / iterations)
    return remaining * remaining


def wrap_angle(angle: float) -> float:
    """Wrap into (-pi, pi]"""
    wrapped = (angle + math.pi) % TWO_PI - math.pi
    if wrapped <= -math.pi:
        wrapped += TWO_PI
    return wrapped


def even_angles(ids: List[str]) -> Dict[str, float]:
    k = max(1, len(ids))
    return {node_id: -math.pi + TWO_PI * i / k for i, node_id in enumerate(ids)}


def box_size(node) -> Point:
    return node.width, max(node.height, MIN_BOX_HEIGHT)


# ============================================================================
# ANGLE ASSIGNMENT
# ============================================================================


def _anchor_parent(node_id: str, state: GraphState, angles: Dict[str, float],
                   index) -> Optional[str]:
    """Primary parent if usable, else first sorted present parent with an angle"""
    primary = state.nodes[node_id].primary_parent_id
    if primary in state.nodes and primary in angles:
        return primary
    for parent in sorted(state.nodes):
        if parent == node_id or parent not in angles:
            continue
        if node_id in index.list_direct_prerequisite_ids(parent):
            return parent
    return None


def separate_clusters(centers: List[float], widths: List[float], gap: float) -> List[float]:
    """
    Push sorted cluster centres apart around the circle until neighbours keep
    at least `gap` between their edges.  Centres are returned unwrapped.
    """
    n = len(centers)
    if n < 2:
        return list(centers)

    total = sum(widths)
    if total + n * gap > TWO_PI:
        gap = max(0.0, (TWO_PI - total) / n)
    if total >= TWO_PI:
        # Cannot fit; lay the clusters edge to edge and let collisions sort it out
        out = []
        start = centers[0] - widths[0] / 2
        for w in widths:
            out.append(start + w / 2)
            start += w
        return out

    centers = list(centers)
    for _ in range(200):
        moved = False
        for i in range(n):
            j = (i + 1) % n
            next_center = centers[j] + (TWO_PI if j == 0 else 0.0)
            need = (widths[i] + widths[j]) / 2 + gap
            deficit = need - (next_center - centers[i])
            if deficit > 1e-9:
                centers[i] -= deficit / 2
                centers[j] += deficit / 2
                moved = True
        if not moved:
            break
    return centers


def _pack_ring(ids: List[str], radius: float, state: GraphState,
               angles: Dict[str, float], index, settings: GraphSettings) -> Dict[str, float]:
    """Parent-anchored clusters for one ring of depth >= 2"""
    fallback = even_angles(ids)
    clusters: Dict[str, List[str]] = defaultdict(list)
    centers: Dict[str, float] = {}

    for node_id in ids:
        parent = _anchor_parent(node_id, state, angles, index)
        if parent is None:
            key = "\0" + node_id
            centers[key] = fallback[node_id]
        else:
            key = parent
            centers[key] = angles[parent]
        clusters[key].append(node_id)

    def width_of(node_id: str) -> float:
        return (state.nodes[node_id].width + settings.sep_padding) / radius

    ordered = sorted(clusters, key=lambda key: (centers[key], key))
    widths = [sum(width_of(n) for n in clusters[key]) for key in ordered]
    gap = settings.ring_spacing_pad / radius
    placed = separate_clusters([centers[key] for key in ordered], widths, gap)

    result = {}
    for key, center, total in zip(ordered, placed, widths):
        cursor = center - total / 2
        for node_id in clusters[key]:
            w = width_of(node_id)
            result[node_id] = wrap_angle(cursor + w / 2)
            cursor += w
    return result


def assign_angles(state: GraphState, depths: Dict[str, int], index,
                  settings: GraphSettings) -> Dict[str, float]:
    """
    Deterministic angle for every present non-root node.

    Depth 1 is evenly spaced over sorted ids.  Deeper rings cluster around the
    angle of each node's parent when parent anchoring is on.
    """
    rings: Dict[int, List[str]] = defaultdict(list)
    for node_id in state.nodes:
        if node_id == state.root_id:
            continue
        rings[depths.get(node_id, 0)].append(node_id)

    radii = ring_radii(state, depths, settings)
    angles: Dict[str, float] = {}
    for depth in sorted(rings):
        ids = sorted(rings[depth])
        if depth >= 2 and settings.use_parent_anchors:
            angles.update(_pack_ring(ids, radii[depth], state,
                                     angles, index, settings))
        else:
            angles.update(even_angles(ids))
    return angles


def plan_layout(state: GraphState, depths: Dict[str, int], index,
                settings: GraphSettings) -> LayoutPlan:
    """Ring targets for every present node"""
    root = state.nodes.get(state.root_id)
    if root is not None and root.fx is not None and root.fy is not None:
        center = (root.fx, root.fy)
    else:
        center = (0.0, 0.0)
    cx, cy = center

    plan = LayoutPlan(center=center, angles=assign_angles(state, depths, index, settings))
    radii = ring_radii(state, depths, settings)
    outer = 0.0
    for node_id in state.nodes:
        if node_id == state.root_id:
            plan.targets[node_id] = center
            continue
        r = radii[depths.get(node_id, 0)]
        outer = max(outer, r)
        a = plan.angles[node_id]
        plan.radii[node_id] = r
        plan.targets[node_id] = (cx + r * math.cos(a), cy + r * math.sin(a))

    plan.bound = 2 * (outer + settings.ring_step) + settings.clamp_pad
    return plan


# ============================================================================
# RELAXATION
# ============================================================================


def resolve_collisions(positions: Dict[str, List[float]], state: GraphState,
                       padding: float, strength: float = 1.0) -> bool:
    """
    One pass of pairwise box separation along the axis of least overlap.

    Each overlap is reduced by `strength` (1.0 removes it).  Fixed nodes
    never move; a pair of fixed nodes is skipped.

    Returns:
        True if any pair overlapped
    """
    ids = sorted(positions)
    overlapped = False
    for i, a_id in enumerate(ids):
        a = state.nodes[a_id]
        aw, ah = box_size(a)
        for b_id in ids[i + 1:]:
            b = state.nodes[b_id]
            if a.fixed and b.fixed:
                continue
            bw, bh = box_size(b)
            pa, pb = positions[a_id], positions[b_id]
            dx = pb[0] - pa[0]
            dy = pb[1] - pa[1]
            overlap_x = (aw + bw) / 2 + padding - abs(dx)
            overlap_y = (ah + bh) / 2 + padding - abs(dy)
            if overlap_x <= 0 or overlap_y <= 0:
                continue
            overlapped = True
            if overlap_x < overlap_y:
                axis, push, sign = 0, overlap_x, (1.0 if dx >= 0 else -1.0)
            else:
                axis, push, sign = 1, overlap_y, (1.0 if dy >= 0 else -1.0)
            push *= strength
            if a.fixed:
                pb[axis] += sign * push
            elif b.fixed:
                pa[axis] -= sign * push
            else:
                pa[axis] -= sign * push / 2
                pb[axis] += sign * push / 2
    return overlapped


def _clamp(positions: Dict[str, List[float]], plan: LayoutPlan) -> None:
    cx, cy = plan.center
    for pos in positions.values():
        pos[0] = min(max(pos[0], cx - plan.bound), cx + plan.bound)
        pos[1] = min(max(pos[1], cy - plan.bound), cy + plan.bound)


def _hold_fixed(positions: Dict[str, List[float]], state: GraphState) -> None:
    for node_id, pos in positions.items():
        node = state.nodes[node_id]
        if node.fixed:
            pos[0], pos[1] = node.fx, node.fy


def relax_step(positions: Dict[str, List[float]], state: GraphState,
               plan: LayoutPlan, settings: GraphSettings, cooling: float = 1.0) -> None:
    """
    Damped pull toward targets, collision separation, ring correction, clamp.

    Every displacement is scaled by `cooling`; see cooling_factor().
    """
    _hold_fixed(positions, state)
    alpha = settings.pull_alpha * cooling
    for node_id, pos in positions.items():
        if state.nodes[node_id].fixed:
            continue
        tx, ty = plan.targets[node_id]
        pos[0] += (tx - pos[0]) * alpha
        pos[1] += (ty - pos[1]) * alpha

    resolve_collisions(positions, state, settings.sep_padding, strength=cooling)

    cx, cy = plan.center
    for node_id, pos in positions.items():
        if state.nodes[node_id].fixed or node_id not in plan.radii:
            continue
        dx, dy = pos[0] - cx, pos[1] - cy
        dist = math.hypot(dx, dy)
        if dist < 1e-6:
            continue
        target = plan.radii[node_id]
        scale = (dist + (target - dist) * settings.ring_spring * cooling) / dist
        pos[0] = cx + dx * scale
        pos[1] = cy + dy * scale

    _clamp(positions, plan)


def settle(positions: Dict[str, List[float]], state: GraphState,
           plan: LayoutPlan, settings: GraphSettings) -> None:
    """Separation-only passes until no boxes overlap (bounded)"""
    _hold_fixed(positions, state)
    for _ in range(settings.settle_passes):
        if not resolve_collisions(positions, state, settings.sep_padding):
            break
        _clamp(positions, plan)


def initial_positions(state: GraphState, plan: LayoutPlan) -> Dict[str, List[float]]:
    """Current coordinates; nodes never placed start at their target"""
    positions = {}
    for node_id, node in state.nodes.items():
        if node.x is None or node.y is None:
            tx, ty = plan.targets[node_id]
            positions[node_id] = [tx, ty]
        else:
            positions[node_id] = [node.x, node.y]
    return positions


def frozen_positions(positions: Dict[str, List[float]]) -> Dict[str, Point]:
    return {node_id: (pos[0], pos[1]) for node_id, pos in positions.items()}


def compute_layout(state: GraphState, depths: Dict[str, int], index,
                   settings: GraphSettings) -> Dict[str, Point]:
    """Run the full relaxation synchronously and return final coordinates"""
    plan = plan_layout(state, depths, index, settings)
    positions = initial_positions(state, plan)
    for step in range(settings.iterations):
        relax_step(positions, state, plan, settings,
                   cooling_factor(step, settings.iterations))
    settle(positions, state, plan, settings)
    return frozen_positions(positions)


class RelaxationRun:
    """
    A cancelable layout run chunked across animation frames.

    Each turn performs `iters_per_frame` relaxation steps, reports positions
    through on_frame, then reschedules itself until `iterations` steps are
    done; the last report follows the settle pass and has done=True.
    """

    def __init__(self, state: GraphState, depths: Dict[str, int], index,
                 settings: GraphSettings, scheduler,
                 on_frame: Callable[[Dict[str, Point], bool], None],
                 frame_seconds: float):
        self.state = state
        self.settings = settings
        self.scheduler = scheduler
        self.on_frame = on_frame
        self.frame_seconds = frame_seconds
        self.plan = plan_layout(state, depths, index, settings)
        self.positions = initial_positions(state, self.plan)
        self.step = 0
        self.token = CancelToken()
        self._handle = None

    @property
    def done(self) -> bool:
        return self.step >= self.settings.iterations

    def cancel(self) -> None:
        self.token.cancel()
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _step(self) -> None:
        relax_step(self.positions, self.state, self.plan, self.settings,
                   cooling_factor(self.step, self.settings.iterations))
        self.step += 1

    def start(self) -> None:
        if not self.settings.animate:
            while not self.done:
                self._step()
            settle(self.positions, self.state, self.plan, self.settings)
            self.on_frame(frozen_positions(self.positions), True)
            return
        self._handle = self.scheduler.call_later(self.frame_seconds, self._frame)

    def _frame(self) -> None:
        self._handle = None
        if self.token.cancelled:
            return
        per_frame = max(1, self.settings.iters_per_frame)
        for _ in range(per_frame):
            if self.done:
                break
            self._step()
        if self.done:
            settle(self.positions, self.state, self.plan, self.settings)
            self.on_frame(frozen_positions(self.positions), True)
            return
        self.on_frame(frozen_positions(self.positions), False)
        if not self.token.cancelled:
            self._handle = self.scheduler.call_later(self.frame_seconds, self._frame)
