#!/usr/bin/env python3
"""
Prerequisite adjacency and depth from a root course
"""

from collections import defaultdict
from typing import Dict, List, Optional

import networkx as nx

from course_store import CourseIndex


def build_adjacency(index: CourseIndex) -> Dict[str, List[str]]:
    """adjacency[id] = direct prerequisite ids, for every known course"""
    return {course_id: index.list_direct_prerequisite_ids(course_id)
            for course_id in index.ids()}


def build_prereq_graph(adjacency: Dict[str, List[str]]) -> nx.DiGraph:
    """Directed graph with edges course -> prerequisite"""
    G = nx.DiGraph()
    for course_id, prereqs in adjacency.items():
        G.add_node(course_id)
        for prereq in prereqs:
            G.add_edge(course_id, prereq)
    return G


def build_depths(index: CourseIndex, root_id: str) -> Dict[str, int]:
    """
    Shortest-hop depth of every course reachable from the root.

    Args:
        index: Course lookup map
        root_id: Root course id (depth 0)

    Returns:
        Dict of course id -> depth.  Unreachable ids are absent; callers use 0
        as a fallback.
    """
    G = build_prereq_graph(build_adjacency(index))
    if root_id not in G:
        return {root_id: 0}
    return dict(nx.single_source_shortest_path_length(G, root_id))


def build_dependents(adjacency: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """Reverse adjacency: prerequisite -> courses that list it"""
    dependents = defaultdict(list)
    for course_id, prereqs in adjacency.items():
        for prereq in prereqs:
            if course_id not in dependents[prereq]:
                dependents[prereq].append(course_id)
    return dict(dependents)


def detect_cycles(adjacency: Dict[str, List[str]]) -> List[List[str]]:
    """
    Detect cycles in the prerequisite graph.

    Returns:
        List of cycles (each cycle is a list of course IDs)
    """
    G = build_prereq_graph(adjacency)
    cycles = list(nx.simple_cycles(G))
    return sorted(cycles, key=lambda x: (len(x), x[0]))


def get_bottleneck_courses(adjacency: Dict[str, List[str]],
                           courses: Optional[List[str]] = None,
                           top_n: int = 10) -> Dict[str, Dict]:
    """
    Find courses that are prerequisites for the most other courses.

    Args:
        adjacency: Output of build_adjacency()
        courses: Optional subset of course ids to restrict to
        top_n: Number of top bottlenecks to return

    Returns:
        Dict where key=course_id, value={blocks: count, dependent_courses: [...]}
    """
    dependents_map = build_dependents(adjacency)
    relevant = set(courses) if courses is not None else set(dependents_map)

    bottlenecks = {}
    for course_id in relevant:
        dependents = dependents_map.get(course_id, [])
        if courses is not None:
            dependents = [d for d in dependents if d in relevant]
        if dependents:
            bottlenecks[course_id] = {
                "blocks": len(dependents),
                "dependent_courses": sorted(dependents),
            }

    return dict(sorted(
        bottlenecks.items(),
        key=lambda x: (-x[1]["blocks"], x[0]),
    )[:top_n])
