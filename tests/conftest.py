import os
import sys

import pytest

os.environ.setdefault("MPLBACKEND", "Agg")

# Add api/ to path so tests can import the modules directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

# Add the repo root so tests can import the build scripts
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

FIXTURE_PATH = os.path.join(os.path.dirname(__file__), "fixtures", "courses.json")


@pytest.fixture
def fixture_path():
    return FIXTURE_PATH


@pytest.fixture
def index():
    from course_store import load_courses
    return load_courses(FIXTURE_PATH, verbose=False)


@pytest.fixture
def scheduler():
    from scheduling import ManualScheduler
    return ManualScheduler()


@pytest.fixture
def engine(index, scheduler):
    from graph_engine import GraphEngine
    from graph_settings import GraphSettings
    return GraphEngine(index=index, settings=GraphSettings(animate=False), scheduler=scheduler)
