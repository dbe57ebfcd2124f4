import json

import pytest
import requests

import course_store
from course_store import (
    CourseDataError, CourseIndex, build_index, clear_export_cache, courses_frame,
    fetch_course_export, load_courses, record_from_row,
)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, reason="OK", bad_json=False):
        self.payload = payload
        self.status_code = status_code
        self.reason = reason
        self.ok = status_code < 400
        self.bad_json = bad_json

    def json(self):
        if self.bad_json:
            raise ValueError("Expecting value")
        return self.payload


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_export_cache()
    yield
    clear_export_cache()


class TestLoadCourses:
    def test_loads_fixture(self, fixture_path, capsys):
        index = load_courses(fixture_path)
        out = capsys.readouterr().out
        assert "Loading course data from" in out
        assert f"Loaded {len(index)} courses" in out
        assert "ECON 201" in index
        assert index.get_course("econ  201").title.startswith("Microeconomic Theory I")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_courses(str(tmp_path / "missing.json"), verbose=False)

    def test_wrapped_payload(self, tmp_path):
        path = tmp_path / "export.json"
        path.write_text(json.dumps({"courses": [
            {"dept": "CMPT", "number": "120", "title": "Intro", "parsed_prerequisites": None},
        ]}))
        index = load_courses(str(path), verbose=False)
        assert index.ids() == ["CMPT 120"]

    def test_payload_without_course_list(self):
        with pytest.raises(ValueError):
            courses_frame({"data": []})
        with pytest.raises(ValueError):
            courses_frame("not courses")


class TestCourseIndex:
    def test_first_record_wins(self):
        df = courses_frame([
            {"dept": "CMPT", "number": "120", "title": "First"},
            {"dept": "cmpt", "number": "120", "title": "Second"},
            {"dept": "", "number": "999", "title": "No department"},
        ])
        index = build_index(df)
        assert len(index) == 1
        assert index.get_course("CMPT 120").title == "First"

    def test_prerequisite_status(self, index):
        assert index.prerequisite_status("CMPT 999") == "No prerequisite data found."
        assert index.prerequisite_status("ECON 103") == "No prerequisites."
        assert index.prerequisite_status("ECON 201") == ""

    def test_search_by_id_and_title(self, index):
        assert [c.course_id for c in index.search("econ 1")] == [
            "ECON 103", "ECON 105", "ECON 113", "ECON 115"]
        assert [c.course_id for c in index.search("life sciences")] == ["MATH 154", "MATH 110"]
        assert len(index.search("MATH", limit=2)) == 2

    def test_collect_graph_courses(self, index):
        ids = [c.course_id for c in index.collect_graph_courses("MATH 100")]
        assert ids == ["MATH 100", "SFU FAN X92", "SFU FAN X99", "SFU FAN X91"]
        assert index.collect_graph_courses("CMPT 999") == []

    def test_extraction_is_cached(self, index):
        first = index.extract_alternative_groups("ECON 201")
        assert index.extract_alternative_groups("ECON 201") is first

    def test_record_keeps_prerequisite_text(self):
        record = record_from_row({
            "dept": "ECON", "number": "103", "title": "Micro",
            "prerequisites": "None.", "parsed_prerequisites": None,
        })
        assert record.prerequisites_text == "None."
        assert record.requirements is None

    def test_record_accepts_tree_under_prerequisites(self):
        record = record_from_row({
            "dept": "ECON", "number": "201", "title": "Micro II",
            "prerequisites": {"type": "transcript", "course": "ECON 103"},
        })
        assert record.requirements.course_id == "ECON 103"
        assert record.prerequisites_text == ""

    def test_empty_index(self):
        index = CourseIndex()
        assert len(index) == 0
        assert index.list_direct_prerequisite_ids("ECON 201") == []


class TestFetchCourseExport:
    def test_sends_api_key_and_caches(self, monkeypatch):
        calls = []

        def fake_get(url, headers, timeout):
            calls.append((url, headers))
            return FakeResponse([{"dept": "ECON", "number": "103"}])

        monkeypatch.setattr(course_store.requests, "get", fake_get)
        first = fetch_course_export("secret")
        second = fetch_course_export("secret")

        assert first == second == [{"dept": "ECON", "number": "103"}]
        assert len(calls) == 1
        url, headers = calls[0]
        assert url == course_store.EXPORT_URL
        assert headers["x-api-key"] == "secret"

    def test_cache_expires(self, monkeypatch):
        calls = []
        monkeypatch.setattr(course_store.requests, "get",
                            lambda url, headers, timeout: calls.append(url) or FakeResponse([]))
        clock = {"now": 1000.0}
        monkeypatch.setattr(course_store.time, "monotonic", lambda: clock["now"])

        fetch_course_export("secret")
        clock["now"] += course_store.CACHE_DURATION + 1
        fetch_course_export("secret")
        assert len(calls) == 2

    def test_missing_key(self):
        with pytest.raises(CourseDataError, match="CROWDSOURCE_API_KEY"):
            fetch_course_export(None)

    def test_http_error(self, monkeypatch):
        monkeypatch.setattr(course_store.requests, "get",
                            lambda url, headers, timeout: FakeResponse(status_code=401,
                                                                      reason="Unauthorized"))
        with pytest.raises(CourseDataError, match="401 Unauthorized"):
            fetch_course_export("wrong")

    def test_connection_error(self, monkeypatch):
        def boom(url, headers, timeout):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(course_store.requests, "get", boom)
        with pytest.raises(CourseDataError, match="refused"):
            fetch_course_export("secret")

    def test_bad_json(self, monkeypatch):
        monkeypatch.setattr(course_store.requests, "get",
                            lambda url, headers, timeout: FakeResponse(bad_json=True))
        with pytest.raises(CourseDataError, match="not valid JSON"):
            fetch_course_export("secret")
