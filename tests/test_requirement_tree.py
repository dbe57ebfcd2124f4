import pytest

from requirement_tree import (
    CourseCountReq, CourseRef, CreditCountReq, GpaReq, Group, NoteReq, OtherReq,
    ProgramReq, UnknownReq, make_course_id, norm_course, parse_requirement,
    split_course_id,
)


class TestCourseIds:
    @pytest.mark.parametrize("dept,number,expected", [
        ("ECON", "201", "ECON 201"),
        (" econ ", " 201 ", "ECON 201"),
        ("MATH", "150.0", "MATH 150"),
        ("SFU FAN", "x92", "SFU FAN X92"),
    ])
    def test_make_course_id(self, dept, number, expected):
        assert make_course_id(dept, number) == expected

    def test_norm_course_collapses_spaces(self):
        assert norm_course("  cmpt   120 ") == "CMPT 120"

    def test_split_course_id_uses_last_token_as_number(self):
        assert split_course_id("SFU FAN X92") == ("SFU FAN", "X92")
        assert split_course_id("Pre-Calculus 12") == ("PRE-CALCULUS", "12")
        assert split_course_id("ECON") == ("ECON", "")


class TestParseRequirement:
    def test_null_means_no_prerequisites(self):
        assert parse_requirement(None) is None

    def test_structured_and_free_text_courses_agree(self):
        structured = parse_requirement(
            {"type": "course", "department": "econ", "number": "103", "minGrade": "C-"})
        free_text = parse_requirement(
            {"type": "transcript", "course": "ECON 103", "minGrade": "C-"})
        assert structured == free_text
        assert structured.course_id == "ECON 103"

    def test_high_school_course(self):
        node = parse_requirement({
            "type": "HSCourse", "course": "Foundations of Mathematics 11",
            "minGrade": "B", "orEquivalent": "true",
        })
        assert node == CourseRef("FOUNDATIONS OF MATHEMATICS", "11", "B", None, True)

    def test_concurrency_flag(self):
        node = parse_requirement(
            {"type": "transcript", "course": "ECON 201", "canBeTakenConcurrently": "true"})
        assert node.concurrency_allowed == "true"

    def test_group_skips_null_children(self):
        node = parse_requirement({
            "type": "group", "logic": "one_of",
            "children": [None, {"type": "course", "department": "MATH", "number": "100"}],
        })
        assert node == Group("ONE_OF", (CourseRef("MATH", "100"),))

    def test_credit_count_shapes(self):
        assert parse_requirement({"type": "creditCount", "creditCount": 45}) == CreditCountReq(45.0)
        node = parse_requirement(
            {"type": "creditCount", "credits": "12", "department": "ECON", "level": "300"})
        assert node == CreditCountReq(12.0, department="ECON", level="300")

    def test_course_count(self):
        node = parse_requirement({"type": "courseCount", "count": 2, "department": "CMPT"})
        assert node == CourseCountReq(2, department="CMPT")

    def test_program_gpa_note_other(self):
        assert parse_requirement({"type": "program", "program": "Business"}) == ProgramReq("Business")
        assert parse_requirement({"type": "gpa", "minCGPA": "2.5"}) == GpaReq(min_cgpa=2.5)
        assert parse_requirement({"type": "note", "text": " see advisor "}) == NoteReq("see advisor")
        assert parse_requirement({"type": "permission", "note": "of instructor"}) == \
            OtherReq("of instructor")

    def test_unknown_shapes_do_not_raise(self):
        assert parse_requirement({"type": "mysteryRule"}) == UnknownReq("mysteryRule")
        assert parse_requirement({}) == UnknownReq("<missing>")
        assert parse_requirement(["ECON 103"]) == UnknownReq("list")
        assert parse_requirement({"type": "course"}) == UnknownReq("course")
