#!/usr/bin/env python3
"""
Prerequisite group extraction.

A requirement tree is flattened into "alternative groups": an ordered list of
rows that must all be satisfied, where each row is a set of interchangeable
course references.  This is the single source of truth for a course's direct
prerequisite courses; adjacency, depth and the interactive graph all read it.
"""

from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional

from requirement_tree import (
    ONE_OF, TWO_OF, CourseCountReq, CourseRef, CreditCountReq, GpaReq, Group,
    NoteReq, OtherReq, ProgramReq, RequirementNode, UnknownReq,
)


@dataclass(frozen=True)
class CourseReq:
    id: str
    min_grade: Optional[str] = None
    concurrency_allowed: Optional[str] = None
    or_equivalent: Optional[bool] = None


AlternativeGroups = List[List[CourseReq]]

# ============================================================================
# TREE WALK
# ============================================================================


def _merge_into(prior: CourseReq, item: CourseReq) -> CourseReq:
    """Fill metadata missing on prior from a later duplicate"""
    changes = {}
    if not prior.min_grade and item.min_grade:
        changes["min_grade"] = item.min_grade
    if not prior.concurrency_allowed and item.concurrency_allowed:
        changes["concurrency_allowed"] = item.concurrency_allowed
    if not prior.or_equivalent and item.or_equivalent:
        changes["or_equivalent"] = item.or_equivalent
    return replace(prior, **changes) if changes else prior


def _walk_course(node: CourseRef) -> AlternativeGroups:
    return [[CourseReq(
        id=node.course_id,
        min_grade=node.min_grade,
        concurrency_allowed=node.concurrency_allowed,
        or_equivalent=node.or_equivalent,
    )]]


def _walk_group(node: Group) -> AlternativeGroups:
    child_results = [walk(child) for child in node.children]
    child_results = [rows for rows in child_results if rows]
    if not child_results:
        return []

    if node.logic == ONE_OF:
        # Alternatives collapse into one row, "A or (B and C)" included
        merged: Dict[str, CourseReq] = {}
        for rows in child_results:
            for row in rows:
                for item in row:
                    prior = merged.get(item.id)
                    merged[item.id] = item if prior is None else _merge_into(prior, item)
        return [sorted(merged.values(), key=lambda item: item.id)]

    # ALL_OF, and TWO_OF which is not distinguished for graph purposes
    result: AlternativeGroups = []
    for rows in child_results:
        result.extend(rows)
    return result


def _no_courses(node) -> AlternativeGroups:
    return []


_WALKERS: Dict[type, Callable[..., AlternativeGroups]] = {
    Group: _walk_group,
    CourseRef: _walk_course,
    CreditCountReq: _no_courses,
    CourseCountReq: _no_courses,
    ProgramReq: _no_courses,
    GpaReq: _no_courses,
    NoteReq: _no_courses,
    OtherReq: _no_courses,
    UnknownReq: _no_courses,
}


def walk(node: Optional[RequirementNode]) -> AlternativeGroups:
    """Depth-first extraction of rows from one requirement node"""
    if node is None:
        return []
    return _WALKERS[type(node)](node)


def _dedupe_row(row: List[CourseReq]) -> List[CourseReq]:
    """Unique ids within a row, keeping the variant that carries a min grade"""
    kept: Dict[str, CourseReq] = {}
    for item in row:
        prior = kept.get(item.id)
        if prior is None or (not prior.min_grade and item.min_grade):
            kept[item.id] = item
    return list(kept.values())


def extract_alternative_groups(tree: Optional[RequirementNode]) -> AlternativeGroups:
    """
    Flatten a requirement tree into alternative groups.

    Args:
        tree: Parsed requirement tree (None means no prerequisites)

    Returns:
        List of rows (ALL_OF across rows); each row is a list of CourseReq
        alternatives with unique ids.  Rows are never empty.
    """
    return [_dedupe_row(row) for row in walk(tree)]


def direct_prerequisite_ids(groups: AlternativeGroups) -> List[str]:
    """Unique ids across all rows, in first-seen order"""
    seen: Dict[str, None] = {}
    for row in groups:
        for item in row:
            seen.setdefault(item.id, None)
    return list(seen)


# ============================================================================
# DISPLAY
# ============================================================================


def format_prerequisites(groups: AlternativeGroups) -> str:
    """Format prerequisites as human-readable string with AND/OR logic"""
    if not groups:
        return ""

    formatted_groups = []
    for row in groups:
        courses = sorted(item.id for item in row)
        if len(courses) == 1:
            formatted_groups.append(courses[0])
        else:
            formatted_groups.append("(" + " or ".join(courses) + ")")

    if len(formatted_groups) == 1:
        return formatted_groups[0]
    return " and ".join(formatted_groups)


def course_label(item: CourseReq, show_min_grade: bool = False) -> str:
    """Button label for a prerequisite course"""
    if show_min_grade and item.min_grade:
        return f"{item.id} ({item.min_grade})"
    return item.id


def _count_scope(department: Optional[str], level: Optional[str]) -> str:
    return " ".join(part for part in (department, level) if part)


def describe_requirement(node: Optional[RequirementNode],
                         show_min_grade: bool = False) -> str:
    """
    Render the full requirement tree as text, non-course leaves included.

    This walk is for display only; it never feeds graph edges.
    """
    if node is None:
        return ""

    if isinstance(node, CourseRef):
        label = node.course_id
        if show_min_grade and node.min_grade:
            label = f"{label} ({node.min_grade})"
        return label

    if isinstance(node, Group):
        parts = [describe_requirement(child, show_min_grade) for child in node.children]
        parts = [part for part in parts if part]
        if not parts:
            return ""
        if len(parts) == 1:
            return parts[0]
        if node.logic == ONE_OF:
            return "(" + " or ".join(parts) + ")"
        if node.logic == TWO_OF:
            return "two of (" + ", ".join(parts) + ")"
        return "(" + " and ".join(parts) + ")"

    if isinstance(node, CourseCountReq):
        scope = _count_scope(node.department, node.level)
        count = node.count if node.count is not None else "?"
        return f"{count} course(s) from {scope}".strip()

    if isinstance(node, CreditCountReq):
        credits = node.credits
        if credits is not None and float(credits).is_integer():
            credits = int(credits)
        scope = _count_scope(node.department, node.level)
        text = f"{credits if credits is not None else '?'} credits"
        return f"{text} from {scope}" if scope else text

    if isinstance(node, ProgramReq):
        return f"admission to {node.program}" if node.program else ""

    if isinstance(node, GpaReq):
        parts = []
        if node.min_cgpa is not None:
            parts.append(f"minimum CGPA {node.min_cgpa:g}")
        if node.min_udgpa is not None:
            parts.append(f"minimum upper division GPA {node.min_udgpa:g}")
        return " and ".join(parts)

    if isinstance(node, (NoteReq, OtherReq)):
        return node.text

    return ""
