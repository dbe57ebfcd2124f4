#!/usr/bin/env python3
"""
Course data loading and lookup
"""

import json
import time
from collections import deque
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
import requests

from prereq_groups import (
    AlternativeGroups, direct_prerequisite_ids, extract_alternative_groups,
)
from requirement_tree import RequirementNode, make_course_id, norm_course, parse_requirement

EXPORT_URL = "https://crowdsource.sfucourses.com/api/public/export-verified-courses"
CACHE_DURATION = 5 * 60  # seconds


class CourseDataError(RuntimeError):
    """Raised when the course export cannot be fetched or decoded"""


# ============================================================================
# DATA MODEL
# ============================================================================

@dataclass(frozen=True)
class CourseRecord:
    dept: str
    number: str
    title: str
    requirements: Optional[RequirementNode]
    prerequisites_text: str = ""

    @property
    def course_id(self) -> str:
        return make_course_id(self.dept, self.number)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value).strip()


def record_from_row(row: Dict[str, Any]) -> CourseRecord:
    """Build a CourseRecord from one exported course row"""
    raw_tree = row.get("parsed_prerequisites")
    if raw_tree is None and "prerequisites" in row and isinstance(row["prerequisites"], dict):
        raw_tree = row["prerequisites"]
    if isinstance(raw_tree, float) and pd.isna(raw_tree):
        raw_tree = None

    text = row.get("prerequisites")
    return CourseRecord(
        dept=_clean(row.get("dept")).upper(),
        number=_clean(row.get("number")).upper(),
        title=_clean(row.get("title")),
        requirements=parse_requirement(raw_tree),
        prerequisites_text=_clean(text) if not isinstance(text, dict) else "",
    )


# ============================================================================
# LOOKUP INDEX
# ============================================================================

class CourseIndex:
    """
    Immutable lookup map over course records keyed by canonical id.

    Group extraction is memoised per index; records never change after load.
    """

    def __init__(self, records: Iterable[CourseRecord] = ()):
        self._courses: Dict[str, CourseRecord] = {}
        for record in records:
            if record.dept and record.number:
                self._courses.setdefault(record.course_id, record)
        self.extract_alternative_groups = lru_cache(maxsize=None)(self._extract)

    def __len__(self) -> int:
        return len(self._courses)

    def __contains__(self, course_id: str) -> bool:
        return norm_course(course_id) in self._courses

    def ids(self) -> List[str]:
        return list(self._courses)

    def records(self) -> List[CourseRecord]:
        return list(self._courses.values())

    def get_course(self, course_id: str) -> Optional[CourseRecord]:
        return self._courses.get(norm_course(course_id))

    def _extract(self, course_id: str) -> AlternativeGroups:
        course = self.get_course(course_id)
        if course is None:
            return []
        return extract_alternative_groups(course.requirements)

    def list_direct_prerequisite_ids(self, course_id: str) -> List[str]:
        """All ids across every row of a course's alternative groups"""
        return direct_prerequisite_ids(self.extract_alternative_groups(course_id))

    def prerequisite_status(self, course_id: str) -> str:
        """Text shown on a node card with nothing to expand"""
        course = self.get_course(course_id)
        if course is None:
            return "No prerequisite data found."
        if course.requirements is None:
            return "No prerequisites."
        return ""

    def search(self, query: str, limit: int = 20) -> List[CourseRecord]:
        """Search for courses by id or title"""
        query_upper = query.upper()
        matches = [
            course for course_id, course in self._courses.items()
            if query_upper in course_id or query_upper in course.title.upper()
        ]
        return matches[:limit]

    def collect_graph_courses(self, root_id: str) -> List[CourseRecord]:
        """Every known course reachable from root through prerequisites"""
        root = self.get_course(root_id)
        if root is None:
            return []

        needed = [root.course_id]
        seen = {root.course_id}
        queue = deque([root.course_id])
        while queue:
            current = queue.popleft()
            for prereq_id in self.list_direct_prerequisite_ids(current):
                if prereq_id in seen:
                    continue
                seen.add(prereq_id)
                needed.append(prereq_id)
                if prereq_id in self._courses:
                    queue.append(prereq_id)

        return [self._courses[cid] for cid in needed if cid in self._courses]


# ============================================================================
# LOADING
# ============================================================================

def courses_frame(payload: Any) -> pd.DataFrame:
    """
    Turn an export payload into a DataFrame of course rows.

    Accepts a bare JSON array or an object with a "courses" list.
    """
    if isinstance(payload, dict):
        if "courses" not in payload:
            raise ValueError("Course export has no 'courses' list")
        payload = payload["courses"]
    if not isinstance(payload, list):
        raise ValueError("Course export must be a list of course records")

    df = pd.DataFrame(payload)
    for col in ["dept", "number", "title"]:
        if col not in df.columns:
            df[col] = ""
    df = df.astype(object).where(pd.notna(df), None)
    return df


def build_index(df: pd.DataFrame) -> CourseIndex:
    """Build the lookup map once from a frame of course rows"""
    return CourseIndex(record_from_row(row) for row in df.to_dict("records"))


def load_courses(path: str, verbose: bool = True) -> CourseIndex:
    """
    Load course records from an exported JSON file.

    Args:
        path: Path to the export (e.g., "sfu-verified-courses.json")
        verbose: Print loading status messages (default: True)

    Returns:
        CourseIndex keyed by "<DEPT> <NUMBER>"

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the export has no course list
    """
    if verbose:
        print(f"Loading course data from {path}...")

    if not Path(path).exists():
        raise FileNotFoundError(f"Course export not found: {path}")

    with open(path, encoding="utf-8") as fh:
        payload = json.load(fh)

    index = build_index(courses_frame(payload))

    if verbose:
        with_prereqs = sum(1 for c in index.records() if c.requirements is not None)
        print(f"Loaded {len(index)} courses, {with_prereqs} with prerequisites")

    return index


_export_cache: Dict[str, Any] = {"payload": None, "fetched_at": None}


def fetch_course_export(api_key: Optional[str], url: str = EXPORT_URL,
                        timeout: float = 30.0) -> Any:
    """
    Fetch the verified-course export, reusing a response for CACHE_DURATION.

    Raises:
        CourseDataError: If no API key is configured or the request fails
    """
    fetched_at = _export_cache["fetched_at"]
    if _export_cache["payload"] is not None and fetched_at is not None \
            and time.monotonic() - fetched_at < CACHE_DURATION:
        return _export_cache["payload"]

    if not api_key:
        raise CourseDataError("CROWDSOURCE_API_KEY is not configured")

    try:
        response = requests.get(
            url,
            headers={"Accept": "application/json", "x-api-key": api_key},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise CourseDataError(f"Failed to fetch course data: {e}") from e

    if not response.ok:
        raise CourseDataError(
            f"Failed to fetch course data: {response.status_code} {response.reason}")

    try:
        payload = response.json()
    except ValueError as e:
        raise CourseDataError(f"Course export is not valid JSON: {e}") from e

    _export_cache["payload"] = payload
    _export_cache["fetched_at"] = time.monotonic()
    return payload


def clear_export_cache() -> None:
    _export_cache["payload"] = None
    _export_cache["fetched_at"] = None
