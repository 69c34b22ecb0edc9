"""
Unit tests for the Moodle payload models.
"""

import pytest


class TestActivityReference:
    def test_by_id(self):
        from school_moodle_mcp.moodle.models import ActivityReference

        ref = ActivityReference(activity_id=5)

        assert ref.by_id is True
        assert ref.describe() == "activity 5"

    def test_by_name(self):
        from school_moodle_mcp.moodle.models import ActivityReference

        ref = ActivityReference.from_params({"course_id": 6, "activity_name": "Quiz"})

        assert ref.by_id is False
        assert "Quiz" in ref.describe()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"course_id": 6},
            {"activity_name": "Quiz"},
            {"activity_id": 5, "course_id": 6},
            {"activity_id": 5, "activity_name": "Quiz"},
            {"course_id": 6, "activity_name": ""},
        ],
    )
    def test_invalid_combinations(self, kwargs):
        from school_moodle_mcp.moodle.models import ActivityReference

        with pytest.raises(ValueError):
            ActivityReference(**kwargs)


class TestCourseModule:
    """Test tolerant construction from Moodle payloads."""

    def test_from_api_full(self):
        from school_moodle_mcp.moodle.models import CourseModule

        module = CourseModule.from_api(
            {
                "id": 42,
                "course": 6,
                "modname": "Resource",
                "instance": 9,
                "name": "Notes",
                "url": "https://m.test/mod/resource/view.php?id=42",
                "description": "<p>Desc</p>",
                "contents": [
                    {
                        "type": "file",
                        "filename": "notes.txt",
                        "fileurl": "https://m.test/pluginfile.php/1/notes.txt",
                        "mimetype": "text/plain",
                        "timemodified": 1700000000,
                    }
                ],
            }
        )

        assert module.modname == "resource"
        assert module.instance == 9
        assert module.intro_html == "<p>Desc</p>"
        assert module.first_content("file").filename == "notes.txt"
        assert module.first_content("url") is None

    def test_from_api_missing_fields(self):
        from school_moodle_mcp.moodle.models import CourseModule

        module = CourseModule.from_api({"id": "7", "name": None}, course_id=6)

        assert module.id == 7
        assert module.course == 6
        assert module.modname == ""
        assert module.name == ""
        assert module.url is None
        assert module.contents is None
        assert module.first_content() is None

    def test_from_api_ignores_malformed_contents(self):
        from school_moodle_mcp.moodle.models import CourseModule

        module = CourseModule.from_api({"id": 1, "contents": ["junk", {"type": 3}]})

        assert [c.type for c in module.contents] == ["", ""]

    def test_merge_fills_missing_fields(self):
        from school_moodle_mcp.moodle.models import CourseModule

        by_id = CourseModule.from_api(
            {"id": 5, "course": 6, "modname": "page", "instance": 3, "name": "P"}
        )
        listed = CourseModule.from_api(
            {
                "id": 5,
                "modname": "page",
                "name": "P",
                "url": "https://m.test/mod/page/view.php?id=5",
                "description": "<p>d</p>",
                "contents": [],
            },
            course_id=6,
        )

        by_id.merge(listed)

        assert by_id.url == "https://m.test/mod/page/view.php?id=5"
        assert by_id.description == "<p>d</p>"
        assert by_id.contents == []
        assert by_id.instance == 3

    def test_to_dict(self):
        from school_moodle_mcp.moodle.models import CourseModule

        module = CourseModule.from_api(
            {
                "id": 5,
                "course": 6,
                "modname": "forum",
                "instance": 3,
                "name": "News",
                "intro": "<p>Hi</p>",
            }
        )

        assert module.to_dict() == {
            "id": 5,
            "course": 6,
            "modname": "forum",
            "instance": 3,
            "name": "News",
            "url": None,
            "description": "<p>Hi</p>",
            "contents": None,
        }


class TestEnrichedActivityContent:
    def test_to_dict_uses_camel_case(self):
        from school_moodle_mcp.moodle.models import (
            ContentType,
            EnrichedActivityContent,
            FileRef,
        )

        content = EnrichedActivityContent(
            activity_name="Essay",
            activity_type="assign",
            activity_url="https://m.test/mod/assign/view.php?id=1",
            content_type=ContentType.TEXT,
            content="Write an essay",
            files=[FileRef("a.pdf", "https://m.test/a.pdf", "application/pdf")],
        )

        assert content.to_dict() == {
            "activityName": "Essay",
            "activityType": "assign",
            "activityUrl": "https://m.test/mod/assign/view.php?id=1",
            "contentType": "text",
            "content": "Write an essay",
            "files": [
                {
                    "filename": "a.pdf",
                    "fileurl": "https://m.test/a.pdf",
                    "mimetype": "application/pdf",
                }
            ],
        }


class TestIterSectionModules:
    def test_order_and_tolerance(self):
        from school_moodle_mcp.moodle.models import iter_section_modules

        sections = [
            {"modules": [{"id": 1}, "junk", {"id": 2}]},
            "junk",
            {"name": "no modules"},
            {"modules": None},
            {"modules": [{"id": 3}]},
        ]

        assert [m["id"] for m in iter_section_modules(sections)] == [1, 2, 3]

    def test_non_list(self):
        from school_moodle_mcp.moodle.models import iter_section_modules

        assert list(iter_section_modules({"modules": []})) == []
