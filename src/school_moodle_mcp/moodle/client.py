"""
Moodle Web Service Client

An asynchronous adapter over Moodle's REST web service surface
(``/webservice/rest/server.php``) and over direct content URLs.

One client is built per tool call with the caller's token and closed when
the call ends; clients are never shared between calls. Every failure is
translated into the MoodleError family:

- UpstreamFault: Moodle answered with an ``exception`` payload
- UpstreamUnavailable: timeout, connection error, HTTP error status,
  or a body that is not JSON
- UpstreamShapeError: JSON of the wrong shape
- NotFoundError: the requested module or assignment does not exist
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from ..config import REST_ENDPOINT_SUFFIX, normalize_site_url
from ..errors import (
    NotFoundError,
    UpstreamFault,
    UpstreamShapeError,
    UpstreamUnavailable,
)
from .html import extract_main_text

logger = logging.getLogger(__name__)

DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Moodle error codes that mean "no such record" rather than a real fault
NOT_FOUND_ERRORCODES = {"invalidrecord", "invalidcoursemodule", "invalidcourseid"}


def flatten_params(params: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """
    Flatten nested parameters into Moodle's REST query format.

    ``{"courseids": [6]}`` becomes ``{"courseids[0]": 6}`` and
    ``{"options": [{"name": "cmid", "value": 5}]}`` becomes
    ``{"options[0][name]": "cmid", "options[0][value]": 5}``.
    """
    flat: Dict[str, Any] = {}
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten_params(value, name))
        elif isinstance(value, (list, tuple)):
            flat.update(flatten_params(dict(enumerate(value)), name))
        elif isinstance(value, bool):
            flat[name] = int(value)
        elif value is not None:
            flat[name] = value
    return flat


def redact_url(url: str) -> str:
    """Drop the query string and fragment, where direct URLs carry their token."""
    parts = urlsplit(url)
    if not parts.query and not parts.fragment:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "<redacted>", ""))


class MoodleClient:
    """
    Per-call Moodle client.

    Args:
        site_url: Moodle site root (a trailing REST endpoint path is stripped)
        token: Web service token for this call
        timeout: Seconds allowed per HTTP request
        verify: Whether to verify TLS certificates
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        site_url: str,
        token: str,
        timeout: float = 30.0,
        verify: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.site_url = normalize_site_url(site_url)
        self._token = token
        self._http = httpx.AsyncClient(
            timeout=timeout,
            verify=verify,
            follow_redirects=True,
            transport=transport,
        )

    @property
    def rest_url(self) -> str:
        return self.site_url + REST_ENDPOINT_SUFFIX

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "MoodleClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def call(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call one Moodle web service function.

        Args:
            function: wsfunction name, e.g. core_course_get_courses
            params: Function parameters (nested lists/dicts are flattened)

        Returns:
            Decoded JSON body

        Raises:
            UpstreamFault: If Moodle reports an exception
            UpstreamUnavailable: On any transport or decoding failure
        """
        query = {
            "wstoken": self._token,
            "wsfunction": function,
            "moodlewsrestformat": "json",
        }
        query.update(flatten_params(params or {}))

        logger.debug(f"Calling Moodle function {function}")
        response = await self._get(self.rest_url, params=query, what=function)

        try:
            data = response.json()
        except ValueError:
            raise UpstreamUnavailable(
                f"Moodle function {function} returned a malformed body"
            )

        if isinstance(data, dict) and data.get("exception"):
            errorcode = data.get("errorcode")
            message = data.get("message") or data.get("exception")
            logger.warning(f"Moodle fault for {function}: {message} ({errorcode})")
            raise UpstreamFault(errorcode, message)

        return data

    async def _get(
        self, url: str, params: Optional[Dict[str, Any]] = None, what: str = ""
    ) -> httpx.Response:
        what = what or "content request"
        try:
            response = await self._http.get(url, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Timed out during {what}: {e}")
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"HTTP {e.response.status_code} during {what}"
            )
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Failed to reach Moodle during {what}: {e}")
        return response

    async def list_courses(self) -> List[Dict[str, Any]]:
        """Return every course visible to the token."""
        courses = await self.call("core_course_get_courses")
        if not isinstance(courses, list):
            raise UpstreamShapeError("Moodle returned non-array for courses")
        return courses

    async def list_course_contents(
        self, course_id: int, options: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Return the sections (with modules) of a course.

        Args:
            course_id: Course id
            options: Moodle content options, e.g. {"cmid": 42}
        """
        params: Dict[str, Any] = {"courseid": course_id}
        if options:
            params["options"] = [
                {"name": name, "value": value} for name, value in options.items()
            ]
        sections = await self.call("core_course_get_contents", params)
        if not isinstance(sections, list):
            raise UpstreamShapeError(
                f"Moodle returned non-array for course {course_id} contents"
            )
        return sections

    async def get_course_module(self, cmid: int) -> Dict[str, Any]:
        """
        Return the course-module record for a cmid.

        Raises:
            NotFoundError: If Moodle has no such module
        """
        try:
            data = await self.call("core_course_get_course_module", {"cmid": cmid})
        except UpstreamFault as e:
            if e.errorcode in NOT_FOUND_ERRORCODES:
                raise NotFoundError(f"Activity with ID {cmid} not found")
            raise

        cm = data.get("cm") if isinstance(data, dict) else None
        if not isinstance(cm, dict):
            raise NotFoundError(f"Activity with ID {cmid} not found")
        return cm

    async def fetch_page_text(self, url: str) -> str:
        """
        Fetch an HTML page directly and extract its readable text.

        The URL is used as-is: it must carry its own credential.
        """
        safe_url = redact_url(url)
        logger.info(f"Fetching page content from {safe_url}")
        response = await self._get(url, what=f"page fetch {safe_url}")
        return extract_main_text(response.text)

    async def fetch_resource_text(self, url: str, mimetype: str) -> str:
        """
        Fetch a resource file directly and extract text where supported.

        Plain-text types are decoded; PDF and DOCX (recognized, no extractor)
        and any other type return explicit placeholders.
        """
        safe_url = redact_url(url)
        logger.info(f"Fetching file content from {safe_url} (MIME: {mimetype})")
        response = await self._get(url, what=f"file fetch {safe_url}")
        mimetype = (mimetype or "").lower()

        if mimetype.startswith("text/"):
            return response.content.decode("utf-8", errors="replace")
        if "pdf" in mimetype:
            logger.warning("PDF text extraction is not available")
            return "[PDF content not extracted: no PDF parser available]"
        if DOCX_MIMETYPE in mimetype:
            logger.warning("DOCX text extraction is not available")
            return "[DOCX content not extracted: no DOCX parser available]"

        logger.warning(f"Unsupported mimetype for content extraction: {mimetype}")
        return f"[Content not extractable for mimetype: {mimetype}]"

    async def fetch_assignment_detail(
        self, course_id: int, instance_id: int
    ) -> Dict[str, Any]:
        """
        Return one assignment from the course's assignment batch.

        Raises:
            NotFoundError: If the course has no assignment with that instance id
        """
        data = await self.call(
            "mod_assign_get_assignments", {"courseids": [course_id]}
        )
        if not isinstance(data, dict):
            raise UpstreamShapeError("Moodle returned non-object for assignments")

        for course in data.get("courses") or []:
            if not isinstance(course, dict):
                continue
            for assignment in course.get("assignments") or []:
                if isinstance(assignment, dict) and assignment.get("id") == instance_id:
                    return assignment

        raise NotFoundError(
            f"Assignment {instance_id} not found in course {course_id}"
        )

    async def fetch_forum_digest(
        self,
        forum_id: int,
        sort_by: str = "timemodified",
        sort_dir: str = "DESC",
        page: int = 0,
        page_size: int = 5,
    ) -> Dict[str, Any]:
        """Return one page of a forum's discussions, most recent first by default."""
        data = await self.call(
            "mod_forum_get_forum_discussions_paginated",
            {
                "forumid": forum_id,
                "sortby": sort_by,
                "sortdirection": sort_dir,
                "page": page,
                "perpage": page_size,
            },
        )
        if not isinstance(data, dict):
            raise UpstreamShapeError("Moodle returned non-object for forum discussions")
        if not isinstance(data.get("discussions"), list):
            data["discussions"] = []
        return data
