#!/usr/bin/env python3
"""
Requirement tree model for course prerequisite data
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

# ============================================================================
# COURSE IDENTIFIERS
# ============================================================================

ONE_OF = "ONE_OF"
ALL_OF = "ALL_OF"
TWO_OF = "TWO_OF"

GROUP_LOGIC = (ONE_OF, ALL_OF, TWO_OF)


def make_course_id(department: str, number: str) -> str:
    """Create standardized course ID from department and number"""
    department = str(department).strip().upper()
    number = str(number).strip().upper()
    number = re.sub(r"\.0$", "", number)
    return f"{department} {number}".strip()


def norm_course(token: str) -> str:
    """Normalize course code to uppercase with single spaces"""
    token = str(token).strip()
    token = re.sub(r"\s+", " ", token)
    return token.upper()


def split_course_id(course_id: str) -> Tuple[str, str]:
    """Split "DEPT NUMBER" into its parts ("" for a missing part)"""
    parts = norm_course(course_id).rsplit(" ", 1)
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


# ============================================================================
# REQUIREMENT NODES
# ============================================================================

@dataclass(frozen=True)
class Group:
    logic: str
    children: Tuple["RequirementNode", ...] = ()


@dataclass(frozen=True)
class CourseRef:
    department: str
    number: str
    min_grade: Optional[str] = None
    concurrency_allowed: Optional[str] = None
    or_equivalent: Optional[bool] = None

    @property
    def course_id(self) -> str:
        if not self.number:
            return norm_course(self.department)
        return make_course_id(self.department, self.number)


@dataclass(frozen=True)
class CreditCountReq:
    credits: Optional[float]
    department: Optional[str] = None
    level: Optional[str] = None
    min_grade: Optional[str] = None
    concurrency_allowed: Optional[str] = None


@dataclass(frozen=True)
class CourseCountReq:
    count: Optional[int]
    department: Optional[str] = None
    level: Optional[str] = None
    min_grade: Optional[str] = None
    concurrency_allowed: Optional[str] = None


@dataclass(frozen=True)
class ProgramReq:
    program: str


@dataclass(frozen=True)
class GpaReq:
    min_cgpa: Optional[float] = None
    min_udgpa: Optional[float] = None


@dataclass(frozen=True)
class NoteReq:
    text: str


@dataclass(frozen=True)
class OtherReq:
    text: str


@dataclass(frozen=True)
class UnknownReq:
    """A node whose tag is not recognised; kept so it can be reported"""
    tag: str


RequirementNode = Union[
    Group, CourseRef, CreditCountReq, CourseCountReq, ProgramReq, GpaReq,
    NoteReq, OtherReq, UnknownReq,
]

REQUIREMENT_KINDS = (
    Group, CourseRef, CreditCountReq, CourseCountReq, ProgramReq, GpaReq,
    NoteReq, OtherReq, UnknownReq,
)

# ============================================================================
# PARSING RAW EXPORT DATA
# ============================================================================


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _number(value: Any, cast=float):
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except (TypeError, ValueError):
        return None


def _flag(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _parse_course(raw: Dict[str, Any]) -> Optional[CourseRef]:
    min_grade = _text(raw.get("minGrade"))
    concurrent = _text(raw.get("canBeTakenConcurrently"))
    or_equivalent = _flag(raw.get("orEquivalent"))

    department = _text(raw.get("department"))
    number = _text(raw.get("number"))
    if department and number:
        return CourseRef(department.upper(), number.upper(), min_grade,
                         concurrent, or_equivalent)

    # Free-text form: "ECON 103", "Pre-Calculus 12"
    course = _text(raw.get("course"))
    if not course:
        return None
    department, number = split_course_id(course)
    return CourseRef(department, number, min_grade, concurrent, or_equivalent)


def parse_requirement(raw: Any) -> Optional[RequirementNode]:
    """
    Parse a raw requirement tree as shipped in a course export.

    Both historical shapes are accepted: structured course leaves
    ({"type": "course", "department": ..., "number": ...}) and free-text
    leaves ({"type": "transcript" | "HSCourse", "course": ...}).

    Args:
        raw: Decoded JSON value (dict, or None for "no prerequisites")

    Returns:
        RequirementNode, or None when the course has no prerequisites.
        Unrecognised shapes become UnknownReq leaves instead of raising.
    """
    if raw is None:
        return None
    if not isinstance(raw, dict):
        return UnknownReq(tag=type(raw).__name__)

    tag = str(raw.get("type", "")).strip()

    if tag == "group":
        logic = str(raw.get("logic", "")).strip().upper()
        children = []
        for child in raw.get("children") or []:
            if child is None:
                continue
            children.append(parse_requirement(child))
        return Group(logic=logic, children=tuple(children))

    if tag in ("course", "transcript", "HSCourse"):
        course = _parse_course(raw)
        return course if course is not None else UnknownReq(tag=tag)

    if tag == "creditCount":
        credits = raw.get("credits", raw.get("creditCount"))
        return CreditCountReq(
            credits=_number(credits),
            department=_text(raw.get("department")),
            level=_text(raw.get("level")),
            min_grade=_text(raw.get("minGrade")),
            concurrency_allowed=_text(raw.get("canBeTakenConcurrently")),
        )

    if tag == "courseCount":
        return CourseCountReq(
            count=_number(raw.get("count"), int),
            department=_text(raw.get("department")),
            level=_text(raw.get("level")),
            min_grade=_text(raw.get("minGrade")),
            concurrency_allowed=_text(raw.get("canBeTakenConcurrently")),
        )

    if tag == "program":
        return ProgramReq(program=_text(raw.get("program")) or "")

    if tag in ("gpa", "GPA"):
        return GpaReq(min_cgpa=_number(raw.get("minCGPA")),
                      min_udgpa=_number(raw.get("minUDGPA")))

    if tag == "note":
        return NoteReq(text=_text(raw.get("text") or raw.get("note")) or "")

    if tag in ("other", "permission"):
        return OtherReq(text=_text(raw.get("text") or raw.get("note")) or "")

    return UnknownReq(tag=tag or "<missing>")
