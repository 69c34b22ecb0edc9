"""
Typed views over Moodle web service payloads.

Moodle responses are loosely typed and fields come and go between versions
and module types, so every ``from_api`` constructor treats missing or
mistyped fields as absent instead of failing.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


def coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value != "" else None


class ContentType(str, Enum):
    """Kinds of content an enriched activity can carry."""

    TEXT = "text"
    HTML_CLEANED = "html_cleaned"
    FILE_PLACEHOLDER = "file_placeholder"
    URL_DETAILS = "url_details"
    ERROR = "error"
    EMPTY = "empty"


@dataclass(frozen=True)
class ActivityReference:
    """Either a course-module id, or a course id plus a name fragment."""

    activity_id: Optional[int] = None
    course_id: Optional[int] = None
    activity_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.activity_id is not None:
            valid = self.course_id is None and not self.activity_name
        else:
            valid = self.course_id is not None and bool(self.activity_name)
        if not valid:
            raise ValueError(
                "ActivityReference needs activity_id or course_id + activity_name, "
                "not both and not neither"
            )

    @property
    def by_id(self) -> bool:
        return self.activity_id is not None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "ActivityReference":
        return cls(
            activity_id=params.get("activity_id"),
            course_id=params.get("course_id"),
            activity_name=params.get("activity_name"),
        )

    def describe(self) -> str:
        if self.by_id:
            return f"activity {self.activity_id}"
        return f"activity matching '{self.activity_name}' in course {self.course_id}"


@dataclass(frozen=True)
class FileRef:
    """An attached file as exposed to tool callers."""

    filename: str
    fileurl: str
    mimetype: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "filename": self.filename,
            "fileurl": self.fileurl,
            "mimetype": self.mimetype,
        }


@dataclass(frozen=True)
class ModuleContent:
    """A file or resource pointer attached to a module."""

    type: str
    filename: Optional[str] = None
    fileurl: Optional[str] = None
    mimetype: Optional[str] = None
    timemodified: Optional[int] = None

    @classmethod
    def from_api(cls, data: Any) -> "ModuleContent":
        if not isinstance(data, dict):
            return cls(type="")
        return cls(
            type=_as_str(data.get("type")) or "",
            filename=_as_str(data.get("filename")),
            fileurl=_as_str(data.get("fileurl")),
            mimetype=_as_str(data.get("mimetype")),
            timemodified=coerce_int(data.get("timemodified")),
        )

    def to_file_ref(self) -> FileRef:
        return FileRef(
            filename=self.filename or "",
            fileurl=self.fileurl or "",
            mimetype=self.mimetype or "",
        )


@dataclass
class CourseModule:
    """
    One activity of a course.

    ``contents`` is None when the payload that produced the module never
    carries contents (e.g. core_course_get_course_module), and a list
    (possibly empty) once they are known.
    """

    id: int
    course: Optional[int]
    modname: str
    instance: Optional[int]
    name: str
    url: Optional[str] = None
    description: Optional[str] = None
    intro: Optional[str] = None
    timemodified: Optional[int] = None
    contents: Optional[List[ModuleContent]] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(
        cls, data: Dict[str, Any], course_id: Optional[int] = None
    ) -> "CourseModule":
        """Build a module from a Moodle payload, tolerating missing fields."""
        contents = data.get("contents")
        return cls(
            id=coerce_int(data.get("id")) or 0,
            course=coerce_int(data.get("course")) or course_id,
            modname=(_as_str(data.get("modname")) or "").lower(),
            instance=coerce_int(data.get("instance")),
            name=_as_str(data.get("name")) or "",
            url=_as_str(data.get("url")),
            description=_as_str(data.get("description")),
            intro=_as_str(data.get("intro")),
            timemodified=coerce_int(data.get("timemodified")),
            contents=(
                [ModuleContent.from_api(c) for c in contents]
                if isinstance(contents, list)
                else None
            ),
            raw=dict(data),
        )

    @property
    def intro_html(self) -> Optional[str]:
        """Description or intro HTML, whichever Moodle supplied."""
        return self.description or self.intro

    def first_content(self, content_type: Optional[str] = None) -> Optional[ModuleContent]:
        for content in self.contents or []:
            if content_type is None or content.type == content_type:
                return content
        return None

    def merge(self, other: "CourseModule") -> None:
        """Fill fields this module lacks from another view of the same module."""
        self.url = self.url or other.url
        self.description = self.description or other.description
        self.intro = self.intro or other.intro
        self.timemodified = self.timemodified or other.timemodified
        if self.contents is None:
            self.contents = other.contents
        if self.course is None:
            self.course = other.course

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "course": self.course,
            "modname": self.modname,
            "instance": self.instance,
            "name": self.name,
            "url": self.url,
            "description": self.intro_html,
            "contents": (
                [asdict(c) for c in self.contents]
                if self.contents is not None
                else None
            ),
        }


@dataclass
class EnrichedActivityContent:
    """Uniform result of fetching an activity's content."""

    activity_name: str
    activity_type: str
    activity_url: str
    content_type: ContentType
    content: str
    files: List[FileRef] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activityName": self.activity_name,
            "activityType": self.activity_type,
            "activityUrl": self.activity_url,
            "contentType": self.content_type.value,
            "content": self.content,
            "files": [f.to_dict() for f in self.files],
        }


def iter_section_modules(sections: Any) -> Iterator[Dict[str, Any]]:
    """Yield raw module payloads across course sections, in order."""
    if not isinstance(sections, list):
        return
    for section in sections:
        if not isinstance(section, dict):
            continue
        modules = section.get("modules")
        if not isinstance(modules, list):
            continue
        for module in modules:
            if isinstance(module, dict):
                yield module
