"""
Tool Registry and Business Logic

This module maps each catalogued tool name to the coroutine that implements
it. Every tool receives the per-call MoodleClient, the validated parameters
(token already removed) and a call-scoped logger, and returns a plain result
(string, dict, list or dataclass) for the dispatcher to wrap.

Available Tools:
- get_courses: List courses, optionally filtered by name
- get_course_contents: Sections and modules of a course
- get_course_activities: Flat activity summary of a course
- get_page_module_content: Text of a page given its direct URL
- get_resource_file_content: Text of a file given its direct URL and mimetype
- get_activity_details: Metadata of one activity
- fetch_activity_content: Enriched content of one activity
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..activities import ActivityResolver
from ..activities.strategies import DEFAULT_FORUM_DIGEST_SIZE
from ..errors import MethodNotFoundError
from ..moodle.client import MoodleClient
from ..moodle.models import ActivityReference, coerce_int, iter_section_modules

logger = logging.getLogger(__name__)

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]
ToolHandler = Callable[[MoodleClient, Dict[str, Any], LoggerLike], Awaitable[Any]]


class ToolRegistry:
    """
    Registry of available tools and their execution logic.

    The registry holds no per-call state: the client and logger are passed
    into every execution.
    """

    def __init__(self, forum_digest_size: int = DEFAULT_FORUM_DIGEST_SIZE):
        """Initialize the tool registry with available tools."""
        self.forum_digest_size = forum_digest_size
        self.tools: Dict[str, ToolHandler] = {
            "get_courses": self._get_courses,
            "get_course_contents": self._get_course_contents,
            "get_course_activities": self._get_course_activities,
            "get_page_module_content": self._get_page_module_content,
            "get_resource_file_content": self._get_resource_file_content,
            "get_activity_details": self._get_activity_details,
            "fetch_activity_content": self._fetch_activity_content,
        }

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self.tools

    async def execute_tool(
        self,
        tool_name: str,
        client: MoodleClient,
        params: Dict[str, Any],
        call_logger: Optional[LoggerLike] = None,
    ) -> Any:
        """
        Execute the specified tool with validated parameters.

        Args:
            tool_name: Name of the tool to execute
            client: MoodleClient scoped to this call's token
            params: Validated parameters without the token
            call_logger: Call-scoped logger

        Returns:
            The tool's business result

        Raises:
            MethodNotFoundError: If no implementation exists for the tool
            ToolError: Any typed failure from the tool
        """
        handler = self.tools.get(tool_name)
        if handler is None:
            raise MethodNotFoundError(f"Unknown tool: {tool_name}")
        return await handler(client, params, call_logger or logger)

    def _resolver(self, client: MoodleClient, call_logger: LoggerLike) -> ActivityResolver:
        return ActivityResolver(
            client, logger=call_logger, forum_digest_size=self.forum_digest_size
        )

    async def _get_courses(
        self, client: MoodleClient, params: Dict[str, Any], call_logger: LoggerLike
    ) -> List[Dict[str, Any]]:
        """
        List courses visible to the token.

        A non-blank ``course_name_filter`` keeps courses whose fullname or
        shortname contains it, case-insensitively.
        """
        courses = [c for c in await client.list_courses() if isinstance(c, dict)]

        name_filter = (params.get("course_name_filter") or "").strip()
        if not name_filter:
            return courses

        needle = name_filter.casefold()
        filtered = [
            course
            for course in courses
            if needle in str(course.get("fullname") or "").casefold()
            or needle in str(course.get("shortname") or "").casefold()
        ]
        call_logger.debug(
            f"Course filter '{name_filter}' kept {len(filtered)} of {len(courses)}"
        )
        return filtered

    async def _get_course_contents(
        self, client: MoodleClient, params: Dict[str, Any], call_logger: LoggerLike
    ) -> List[Dict[str, Any]]:
        return await client.list_course_contents(params["course_id"])

    async def _get_course_activities(
        self, client: MoodleClient, params: Dict[str, Any], call_logger: LoggerLike
    ) -> List[Dict[str, Any]]:
        """
        Flatten every module of a course into a summary row.

        Missing ``url`` becomes None and missing ``timemodified`` falls back
        to the first content entry's value, then to 0.
        """
        sections = await client.list_course_contents(params["course_id"])

        activities = []
        for module in iter_section_modules(sections):
            timemodified = coerce_int(module.get("timemodified"))
            if timemodified is None:
                contents = module.get("contents")
                if isinstance(contents, list) and contents and isinstance(contents[0], dict):
                    timemodified = coerce_int(contents[0].get("timemodified"))

            activities.append(
                {
                    "id": module.get("id"),
                    "name": module.get("name"),
                    "modname": module.get("modname"),
                    "url": module.get("url") or None,
                    "timemodified": timemodified or 0,
                }
            )

        call_logger.debug(
            f"Course {params['course_id']} has {len(activities)} activities"
        )
        return activities

    async def _get_page_module_content(
        self, client: MoodleClient, params: Dict[str, Any], call_logger: LoggerLike
    ) -> str:
        return await client.fetch_page_text(params["page_content_url"])

    async def _get_resource_file_content(
        self, client: MoodleClient, params: Dict[str, Any], call_logger: LoggerLike
    ) -> str:
        return await client.fetch_resource_text(
            params["resource_file_url"], params["mimetype"]
        )

    async def _get_activity_details(
        self, client: MoodleClient, params: Dict[str, Any], call_logger: LoggerLike
    ) -> Dict[str, Any]:
        ref = ActivityReference.from_params(params)
        module = await self._resolver(client, call_logger).resolve_base_details(ref)
        return module.to_dict()

    async def _fetch_activity_content(
        self, client: MoodleClient, params: Dict[str, Any], call_logger: LoggerLike
    ) -> Dict[str, Any]:
        ref = ActivityReference.from_params(params)
        content = await self._resolver(client, call_logger).fetch_content(ref)
        return content.to_dict()
