#!/usr/bin/env python3
"""
Course Prerequisite Graph API

Serves course lookups, prerequisite groups and interactive graph sessions.
Each session owns one GraphEngine; clients post clicks/hovers and receive the
updated nodes and edges with their layout positions.

Run with:
    uvicorn graph_api:app --app-dir api --reload
"""

import re
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from course_store import (
    EXPORT_URL, CourseIndex, build_index, courses_frame, fetch_course_export, load_courses,
)
from depth_index import build_adjacency, build_dependents, detect_cycles
from graph_engine import GraphEngine
from graph_settings import GraphSettings, course_data_path, export_api_key, export_url
from prereq_groups import describe_requirement, format_prerequisites
from requirement_tree import norm_course
from scheduling import AsyncioScheduler

# Free-text requirement ids ("MATH 30-1", "ENGLISH 12 FIRST PEOPLES") are valid too
COURSE_ID_PATTERN = re.compile(r"^[^\x00-\x1f/]{1,80}$")

MAX_SESSIONS = 256

# ============================================================================
# DATA MODELS
# ============================================================================

class Course(BaseModel):
    course_id: str
    title: str
    dept: str
    number: str
    prerequisites_text: str = ""
    status: str = ""


class CourseRequirement(BaseModel):
    id: str
    min_grade: Optional[str] = None
    concurrency_allowed: Optional[str] = None
    or_equivalent: Optional[bool] = None


class PrerequisiteGroup(BaseModel):
    courses: List[CourseRequirement]
    operator: str = "OR"


class CoursePrerequisites(BaseModel):
    course_id: str
    prerequisites: List[PrerequisiteGroup]
    formatted: str
    requirements: str
    status: str
    total_count: int


class NodeView(BaseModel):
    id: str
    title: str
    subtitle: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: float
    height: float
    depth: int
    persisted: bool
    highlight: bool
    pinned: bool
    primary_parent_id: Optional[str] = None
    status: str = ""


class EdgeView(BaseModel):
    source: str
    target: str
    ephemeral: bool = False


class GraphView(BaseModel):
    session_id: str
    root: str
    nodes: List[NodeView]
    edges: List[EdgeView]
    layout_running: bool = False


class SettingsUpdate(BaseModel):
    ring_base: Optional[float] = None
    ring_step: Optional[float] = None
    iterations: Optional[int] = None
    pull_alpha: Optional[float] = None
    sep_padding: Optional[float] = None
    ring_spring: Optional[float] = None
    clamp_pad: Optional[float] = None
    ring_spacing_pad: Optional[float] = None
    iters_per_frame: Optional[int] = None
    settle_passes: Optional[int] = None
    use_parent_anchors: Optional[bool] = None
    animate: Optional[bool] = None
    show_min_grade: Optional[bool] = None


class GraphRequest(BaseModel):
    root: str
    settings: Optional[SettingsUpdate] = None


class EdgeAction(BaseModel):
    parent: str
    course: str


class CloseAction(BaseModel):
    course: str
    parent: Optional[str] = None


class PinAction(BaseModel):
    course: str
    pinned: bool = True


# ============================================================================
# DATA STORAGE CLASS
# ============================================================================

class CourseDataStore:
    """In-memory course index plus the live graph sessions"""

    def __init__(self):
        self.index: Optional[CourseIndex] = None
        self.load_error: Optional[str] = None
        self.sessions: "OrderedDict[str, GraphEngine]" = OrderedDict()
        self._dependents: Optional[Dict[str, List[str]]] = None

    def set_index(self, index: CourseIndex):
        self.index = index
        self.load_error = None
        self.clear_sessions()
        self._dependents = None

    def add_session(self, session_id: str, engine: GraphEngine):
        """Store a session, evicting the least recently used beyond MAX_SESSIONS"""
        self.sessions[session_id] = engine
        while len(self.sessions) > MAX_SESSIONS:
            _, evicted = self.sessions.popitem(last=False)
            evicted.dispose()

    def get_session(self, session_id: str) -> Optional[GraphEngine]:
        engine = self.sessions.get(session_id)
        if engine is not None:
            self.sessions.move_to_end(session_id)
        return engine

    def remove_session(self, session_id: str):
        engine = self.sessions.pop(session_id, None)
        if engine is not None:
            engine.dispose()

    def clear_sessions(self):
        for engine in self.sessions.values():
            engine.dispose()
        self.sessions.clear()

    def load_data(self, path: str, verbose: bool = True):
        """
        Load the course export from disk, or from the remote export when the
        file is missing and an API key is configured.
        """
        if Path(path).exists() or not export_api_key():
            self.set_index(load_courses(path, verbose=verbose))
            return

        url = export_url() or EXPORT_URL
        if verbose:
            print(f"{path} not found, fetching course export from {url}")
        payload = fetch_course_export(export_api_key(), url)
        index = build_index(courses_frame(payload))
        if verbose:
            print(f"Data loaded: {len(index)} courses")
        self.set_index(index)

    def dependents(self) -> Dict[str, List[str]]:
        if self._dependents is None:
            self._dependents = build_dependents(build_adjacency(self.index))
        return self._dependents


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load data on startup, drop sessions on shutdown"""
    path = course_data_path()
    try:
        data_store.load_data(path)
    except Exception as e:
        data_store.load_error = str(e)
        print(f"Warning: Could not load data on startup: {e}")
        print("API will return 503 until data is loaded")
    yield
    data_store.clear_sessions()


app = FastAPI(
    lifespan=lifespan,
    title="Course Prerequisite Graph API",
    description="API for querying course prerequisites and exploring interactive prerequisite graphs",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

data_store = CourseDataStore()


def _require_index() -> CourseIndex:
    if data_store.index is None:
        raise HTTPException(status_code=503, detail="Data not loaded")
    return data_store.index


def _clean_course_id(course_id: str) -> str:
    """Canonical id; "ECON-201" is accepted for "ECON 201" in URLs"""
    cid = norm_course(course_id)
    if " " not in cid:
        cid = cid.replace("-", " ")
    if not COURSE_ID_PATTERN.match(cid):
        raise HTTPException(status_code=400, detail="Invalid course ID format")
    return cid


def _session(session_id: str) -> GraphEngine:
    _require_index()
    engine = data_store.get_session(session_id)
    if engine is None:
        raise HTTPException(status_code=404, detail=f"Graph session {session_id} not found")
    return engine


def _view(session_id: str, engine: GraphEngine) -> GraphView:
    return GraphView(session_id=session_id, **engine.view())


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """API health check"""
    return {
        "status": "online",
        "message": "Course Prerequisite Graph API",
        "data_loaded": data_store.index is not None,
        "course_count": len(data_store.index) if data_store.index is not None else 0,
        "load_error": data_store.load_error,
        "sessions": len(data_store.sessions),
    }


@app.get("/courses/{course_id}", response_model=Course)
async def get_course(course_id: str):
    """Get details for a specific course"""
    index = _require_index()
    cid = _clean_course_id(course_id)

    course = index.get_course(cid)
    if course is None:
        raise HTTPException(status_code=404, detail=f"Course {course_id} not found")

    return Course(
        course_id=course.course_id,
        title=course.title,
        dept=course.dept,
        number=course.number,
        prerequisites_text=course.prerequisites_text,
        status=index.prerequisite_status(cid),
    )


@app.get("/courses/{course_id}/prerequisites", response_model=CoursePrerequisites)
async def get_course_prerequisites(course_id: str,
                                   show_min_grade: bool = Query(False)):
    """Get the alternative groups for a specific course"""
    index = _require_index()
    cid = _clean_course_id(course_id)

    groups = index.extract_alternative_groups(cid)
    course = index.get_course(cid)
    return CoursePrerequisites(
        course_id=cid,
        prerequisites=[
            PrerequisiteGroup(courses=[
                CourseRequirement(
                    id=item.id,
                    min_grade=item.min_grade,
                    concurrency_allowed=item.concurrency_allowed,
                    or_equivalent=item.or_equivalent,
                )
                for item in row
            ])
            for row in groups
        ],
        formatted=format_prerequisites(groups) or "None",
        requirements=describe_requirement(course.requirements, show_min_grade)
        if course is not None else "",
        status=index.prerequisite_status(cid),
        total_count=len(index.list_direct_prerequisite_ids(cid)),
    )


@app.get("/search")
async def search_courses(
    query: str = Query(..., min_length=2, description="Search term"),
    limit: int = Query(20, le=100, description="Maximum results")
):
    """Search for courses by ID or title"""
    index = _require_index()

    results = [
        {"course_id": course.course_id, "title": course.title, "dept": course.dept}
        for course in index.search(query, limit=limit)
    ]
    return {"query": query, "count": len(results), "results": results}


@app.get("/courses/{course_id}/relations")
async def get_course_relations(course_id: str):
    """Prerequisites, dependents and reachable courses for one course"""
    index = _require_index()
    cid = _clean_course_id(course_id)

    if cid not in index:
        raise HTTPException(status_code=404, detail=f"Course {cid} does not exist in dataset")

    groups = index.extract_alternative_groups(cid)
    reachable = [c.course_id for c in index.collect_graph_courses(cid)]

    return {
        "course": cid,
        "prerequisites_raw": [[item.id for item in row] for row in groups],
        "prerequisites_formatted": format_prerequisites(groups) or "None",
        "is_prereq_for": sorted(data_store.dependents().get(cid, [])),
        "reachable_courses": reachable,
    }


@app.get("/cycles")
async def get_cycles():
    """Prerequisite cycles across the whole data set"""
    index = _require_index()
    cycles = detect_cycles(build_adjacency(index))
    return {"count": len(cycles), "cycles": cycles}


@app.post("/graph", response_model=GraphView)
async def create_graph(request: GraphRequest):
    """Start an interactive graph session rooted at a course"""
    index = _require_index()
    root_id = _clean_course_id(request.root)

    settings = GraphSettings(animate=False)
    if request.settings is not None:
        settings = settings.merged(**request.settings.model_dump())

    engine = GraphEngine(index=index, settings=settings, scheduler=AsyncioScheduler())
    engine.set_root(root_id)
    session_id = uuid.uuid4().hex
    data_store.add_session(session_id, engine)
    return _view(session_id, engine)


@app.get("/graph/{session_id}", response_model=GraphView)
async def get_graph(session_id: str):
    """Current nodes and edges of a session"""
    return _view(session_id, _session(session_id))


@app.delete("/graph/{session_id}")
async def delete_graph(session_id: str):
    _session(session_id)
    data_store.remove_session(session_id)
    return {"deleted": session_id}


@app.post("/graph/{session_id}/click", response_model=GraphView)
async def click_course(session_id: str, action: EdgeAction):
    """Toggle a course under a parent"""
    engine = _session(session_id)
    engine.click(_clean_course_id(action.parent), _clean_course_id(action.course))
    return _view(session_id, engine)


@app.post("/graph/{session_id}/open", response_model=GraphView)
async def open_course(session_id: str, action: EdgeAction):
    engine = _session(session_id)
    engine.open(_clean_course_id(action.parent), _clean_course_id(action.course))
    return _view(session_id, engine)


@app.post("/graph/{session_id}/close", response_model=GraphView)
async def close_course(session_id: str, action: CloseAction):
    engine = _session(session_id)
    parent = _clean_course_id(action.parent) if action.parent else None
    engine.close(_clean_course_id(action.course), parent)
    return _view(session_id, engine)


@app.post("/graph/{session_id}/hover-in", response_model=GraphView)
async def hover_in(session_id: str, action: EdgeAction):
    engine = _session(session_id)
    engine.hover_in(_clean_course_id(action.parent), _clean_course_id(action.course))
    return _view(session_id, engine)


@app.post("/graph/{session_id}/hover-out", response_model=GraphView)
async def hover_out(session_id: str, action: EdgeAction):
    engine = _session(session_id)
    engine.hover_out(_clean_course_id(action.parent), _clean_course_id(action.course))
    return _view(session_id, engine)


@app.post("/graph/{session_id}/pin", response_model=GraphView)
async def pin_course(session_id: str, action: PinAction):
    """Hold a node in place while the pointer rests on it"""
    engine = _session(session_id)
    engine.pin_hover(_clean_course_id(action.course), action.pinned)
    return _view(session_id, engine)


@app.put("/graph/{session_id}/settings", response_model=GraphView)
async def update_settings(session_id: str, update: SettingsUpdate):
    """Change layout/display settings and lay out again"""
    engine = _session(session_id)
    engine.update_settings(**update.model_dump())
    return _view(session_id, engine)


@app.get("/graph/{session_id}/nodes/{course_id}")
async def node_details(session_id: str, course_id: str):
    """Card text for one node of a session"""
    engine = _session(session_id)
    return engine.node_details(_clean_course_id(course_id))
