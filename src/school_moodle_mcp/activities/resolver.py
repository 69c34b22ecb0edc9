"""
Activity Content Resolver

Turns an ActivityReference into full module metadata and then into
enriched content.

Resolution Flow:
1. Resolve base details: by course-module id (one call), or by scanning the
   course's sections for the first module whose name contains the query
   (case-insensitive, section/module order). Failures here propagate.
2. Dispatch on the lower-cased modname through the strategy table, falling
   back to the generic description strategy.
3. The strategy recovers its own secondary-fetch failures and returns a
   uniform EnrichedActivityContent.
"""

import functools
import logging
from typing import Dict, Optional, Union

from ..errors import NotFoundError
from ..moodle.client import MoodleClient
from ..moodle.models import (
    ActivityReference,
    CourseModule,
    EnrichedActivityContent,
    iter_section_modules,
)
from .strategies import (
    DEFAULT_FORUM_DIGEST_SIZE,
    STRATEGIES,
    Strategy,
    extract_fallback,
    extract_forum,
)

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


class ActivityResolver:
    """
    Resolves activities against one per-call MoodleClient.

    Args:
        client: Client scoped to the current call's token
        logger: Call-scoped logger; defaults to the module logger
        strategies: Override of the modname -> strategy table
        forum_digest_size: Number of discussions in the forum digest
    """

    def __init__(
        self,
        client: MoodleClient,
        logger: Optional[LoggerLike] = None,
        strategies: Optional[Dict[str, Strategy]] = None,
        forum_digest_size: int = DEFAULT_FORUM_DIGEST_SIZE,
    ):
        self.client = client
        self.logger = logger or logging.getLogger(__name__)
        if strategies is None:
            strategies = dict(STRATEGIES)
            strategies["forum"] = functools.partial(
                extract_forum, page_size=forum_digest_size
            )
        self.strategies = strategies
        self.default_strategy: Strategy = extract_fallback

    async def resolve_base_details(self, ref: ActivityReference) -> CourseModule:
        """
        Resolve module metadata for a reference.

        Raises:
            NotFoundError: If no module matches
            MoodleError: If the upstream lookup fails
        """
        if ref.by_id:
            self.logger.debug(f"Resolving activity {ref.activity_id} by id")
            cm = await self.client.get_course_module(ref.activity_id)
            return CourseModule.from_api(cm)

        self.logger.debug(
            f"Resolving '{ref.activity_name}' by name in course {ref.course_id}"
        )
        sections = await self.client.list_course_contents(ref.course_id)
        query = ref.activity_name.casefold()
        for raw in iter_section_modules(sections):
            name = raw.get("name")
            if isinstance(name, str) and query in name.casefold():
                return CourseModule.from_api(raw, course_id=ref.course_id)

        raise NotFoundError(
            f"No activity matching '{ref.activity_name}' found in course {ref.course_id}"
        )

    def strategy_for(self, modname: str) -> Strategy:
        return self.strategies.get((modname or "").lower(), self.default_strategy)

    async def fetch_content(self, ref: ActivityReference) -> EnrichedActivityContent:
        """Resolve a reference and extract its content in the uniform shape."""
        module = await self.resolve_base_details(ref)
        strategy = self.strategy_for(module.modname)
        self.logger.info(
            f"Fetching content for module {module.id} "
            f"(modname={module.modname or 'unknown'}, instance={module.instance})"
        )
        return await strategy(module, self.client)
