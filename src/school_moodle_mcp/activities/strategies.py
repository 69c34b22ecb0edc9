"""
Content Extraction Strategies

One coroutine per Moodle module type, each turning a resolved CourseModule
into an EnrichedActivityContent. Every strategy has the same signature:

    async def strategy(module: CourseModule, client: MoodleClient)
        -> EnrichedActivityContent

Failures of secondary fetches (assignment detail, page HTML, resource file,
forum discussions) are caught here and returned as bracketed placeholders
with ``contentType: error``. Missing upstream fields degrade to placeholders
instead of raising.

Available strategies:
- assign: assignment intro as text plus its attached files
- page: embedded HTML file, then the view URL, then the inline description
- resource: first attached file through the mimetype-aware extractor
- url: external link combined with the description, no fetch
- forum: forum intro plus a digest of the latest discussions
- fallback: inline description/intro of any other module type
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..errors import MoodleError
from ..moodle.client import MoodleClient, redact_url
from ..moodle.html import PAGE_NOT_FOUND_PLACEHOLDER, strip_html
from ..moodle.models import (
    ContentType,
    CourseModule,
    EnrichedActivityContent,
    FileRef,
    ModuleContent,
    iter_section_modules,
)

logger = logging.getLogger(__name__)

Strategy = Callable[[CourseModule, MoodleClient], Awaitable[EnrichedActivityContent]]

DEFAULT_FORUM_DIGEST_SIZE = 5
EMPTY_CONTENT_PLACEHOLDER = "[No content available]"
URL_NOT_AVAILABLE = "[Activity URL not available]"


def activity_url(module: CourseModule, site_url: str) -> str:
    """Return the module's view URL, building the standard one if absent."""
    if module.url:
        return module.url
    if not module.id or not module.modname:
        return URL_NOT_AVAILABLE
    return f"{site_url}/mod/{module.modname}/view.php?id={module.id}"


def enrich(
    module: CourseModule,
    site_url: str,
    content: Optional[str],
    content_type: Optional[ContentType] = None,
    files: Iterable[FileRef] = (),
) -> EnrichedActivityContent:
    """
    Wrap strategy output in the uniform result shape.

    Blank content becomes a placeholder tagged ``empty``. Without an explicit
    content type, bracketed placeholders are tagged ``error`` and anything
    else ``text``.
    """
    if content is None or not content.strip():
        content = EMPTY_CONTENT_PLACEHOLDER
        content_type = ContentType.EMPTY
    elif content_type is None:
        is_placeholder = content.startswith("[") and content.endswith("]")
        content_type = ContentType.ERROR if is_placeholder else ContentType.TEXT

    return EnrichedActivityContent(
        activity_name=module.name,
        activity_type=module.modname,
        activity_url=activity_url(module, site_url),
        content_type=content_type,
        content=content,
        files=list(files),
    )


async def ensure_contents(module: CourseModule, client: MoodleClient) -> CourseModule:
    """
    Complete a module resolved by id with its contents, URL and description.

    core_course_get_course_module omits those fields; they are looked up with
    core_course_get_contents restricted to the module. Failures leave the
    module unchanged.
    """
    if module.contents is not None or module.course is None:
        return module

    try:
        sections = await client.list_course_contents(
            module.course, {"cmid": module.id}
        )
    except MoodleError as e:
        logger.warning(f"Could not load contents for module {module.id}: {e}")
        return module

    for raw in iter_section_modules(sections):
        candidate = CourseModule.from_api(raw, course_id=module.course)
        if candidate.id == module.id:
            module.merge(candidate)
            break
    return module


def _file_refs(raw_files: Any) -> List[FileRef]:
    if not isinstance(raw_files, list):
        return []
    return [
        ModuleContent.from_api(raw).to_file_ref()
        for raw in raw_files
        if isinstance(raw, dict)
    ]


async def extract_assign(
    module: CourseModule, client: MoodleClient
) -> EnrichedActivityContent:
    """Assignment intro as plain text, with a summary of attached files."""
    if module.course is None or module.instance is None:
        return enrich(
            module,
            client.site_url,
            "[Assignment course or instance id missing]",
        )

    try:
        assignment = await client.fetch_assignment_detail(
            module.course, module.instance
        )
    except MoodleError as e:
        logger.error(f"Error fetching assignment {module.instance}: {e}")
        return enrich(
            module, client.site_url, f"[Error fetching assignment details: {e}]"
        )

    files = _file_refs(assignment.get("introfiles")) + _file_refs(
        assignment.get("introattachments")
    )
    text = strip_html(assignment.get("intro"))
    if not text:
        content = "[Assignment description is empty]"
        content_type = ContentType.EMPTY
    else:
        content = text
        content_type = ContentType.TEXT

    if files:
        names = ", ".join(f.filename for f in files if f.filename)
        content += f"\n\nAttached files: {names}"

    return enrich(module, client.site_url, content, content_type, files)


async def extract_page(
    module: CourseModule, client: MoodleClient
) -> EnrichedActivityContent:
    """Page text from its HTML content file, its view URL or its description."""
    module = await ensure_contents(module, client)

    html_file = next(
        (
            c
            for c in module.contents or []
            if c.type == "file" and c.fileurl and "text/html" in (c.mimetype or "")
        ),
        None,
    )
    source_url = html_file.fileurl if html_file is not None else module.url

    fetch_error = None
    if source_url:
        try:
            text = await client.fetch_page_text(source_url)
        except MoodleError as e:
            logger.warning(
                f"Failed to fetch page content from {redact_url(source_url)}: {e}"
            )
            fetch_error = e
        else:
            if text and text != PAGE_NOT_FOUND_PLACEHOLDER:
                return enrich(module, client.site_url, text, ContentType.HTML_CLEANED)

    description = strip_html(module.intro_html)
    if description:
        return enrich(module, client.site_url, description, ContentType.HTML_CLEANED)

    if fetch_error is not None:
        return enrich(
            module,
            client.site_url,
            f"[Error fetching page content: {fetch_error}]",
            ContentType.ERROR,
        )
    return enrich(
        module, client.site_url, PAGE_NOT_FOUND_PLACEHOLDER, ContentType.EMPTY
    )


async def extract_resource(
    module: CourseModule, client: MoodleClient
) -> EnrichedActivityContent:
    """Text of the module's first attached file."""
    module = await ensure_contents(module, client)

    main_file = module.first_content("file")
    if main_file is None or not main_file.fileurl or not main_file.mimetype:
        return enrich(
            module,
            client.site_url,
            "[Resource file not found or mimetype missing]",
            ContentType.EMPTY,
        )

    files = [main_file.to_file_ref()]
    try:
        content = await client.fetch_resource_text(
            main_file.fileurl, main_file.mimetype
        )
    except MoodleError as e:
        logger.error(f"Error fetching resource content for module {module.id}: {e}")
        return enrich(
            module,
            client.site_url,
            f"[Error fetching resource content: {e}]",
            ContentType.ERROR,
            files,
        )

    if content.startswith("[") and content.endswith("]"):
        content_type = ContentType.FILE_PLACEHOLDER
    else:
        content_type = ContentType.TEXT
    return enrich(module, client.site_url, content, content_type, files)


async def extract_url(
    module: CourseModule, client: MoodleClient
) -> EnrichedActivityContent:
    """External link and description of a URL module."""
    module = await ensure_contents(module, client)

    first = module.first_content()
    external_url = (first.fileurl if first is not None else None) or module.url
    description = strip_html(module.intro_html)

    content = (
        f"URL: {external_url or '[URL not available]'}\n"
        f"Description: {description or '[No description]'}"
    )
    return enrich(module, client.site_url, content, ContentType.URL_DETAILS)


def _format_discussion(discussion: Any) -> str:
    if not isinstance(discussion, dict):
        return "- (unreadable discussion entry)"
    name = discussion.get("name") or discussion.get("subject") or "(untitled)"
    author = discussion.get("userfullname") or "unknown author"
    replies = discussion.get("numreplies")
    if not isinstance(replies, int):
        replies = 0
    return f"- {name} — {author} ({replies} replies)"


async def extract_forum(
    module: CourseModule,
    client: MoodleClient,
    page_size: int = DEFAULT_FORUM_DIGEST_SIZE,
) -> EnrichedActivityContent:
    """Forum introduction followed by the most recent discussions."""
    if not module.intro_html:
        module = await ensure_contents(module, client)

    if module.instance is None:
        return enrich(module, client.site_url, "[Forum instance id missing]")

    try:
        digest = await client.fetch_forum_digest(module.instance, page_size=page_size)
    except MoodleError as e:
        logger.error(f"Error fetching discussions for forum {module.instance}: {e}")
        return enrich(
            module, client.site_url, f"[Error fetching forum discussions: {e}]"
        )

    intro = strip_html(module.intro_html)
    prefix = f"Forum introduction: {intro}\n\n" if intro else ""

    discussions = digest.get("discussions") or []
    if not discussions:
        content = f"{prefix}[No discussions found in this forum]"
    else:
        lines = [_format_discussion(d) for d in discussions[:page_size]]
        content = prefix + "Latest discussions:\n" + "\n".join(lines)

    return enrich(module, client.site_url, content, ContentType.TEXT)


async def extract_fallback(
    module: CourseModule, client: MoodleClient
) -> EnrichedActivityContent:
    """Inline description or intro of a module type without its own strategy."""
    if not module.intro_html:
        module = await ensure_contents(module, client)

    description = strip_html(module.intro_html)
    if description:
        content = f"Description: {description}"
    else:
        content = (
            f'[Activity type "{module.modname or "unknown"}" has no specific '
            f"content extractor and no description]"
        )
    return enrich(module, client.site_url, content)


STRATEGIES: Dict[str, Strategy] = {
    "assign": extract_assign,
    "page": extract_page,
    "resource": extract_resource,
    "url": extract_url,
    "forum": extract_forum,
}
