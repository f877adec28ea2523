"""
Paginated Fetching

Drives cursor- or offset-paginated vendor endpoints page by page, with a hard
page ceiling, a fixed pause between pages and 429 retries per page.
"""

import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence

from growth_sync.errors import MalformedResponse, RateLimited
from growth_sync.models.entities import Page, RawPage, Token
from growth_sync.utils.clock import Clock
from growth_sync.utils.config import RateLimitConfig
from growth_sync.utils.ratelimit import RetryPolicy

logger = logging.getLogger(__name__)

FetchPage = Callable[[Token], Awaitable[RawPage]]
Decode = Callable[[Any], list]
StopPredicate = Callable[[Page], bool]


def no_item_within(hours: float) -> StopPredicate:
    """Stop once a page holds no item with a known age of at most `hours`."""

    def predicate(page: Page) -> bool:
        return not any(
            getattr(item, "age_hours", None) is not None and item.age_hours <= hours
            for item in page.items
        )

    predicate.__name__ = f"no_item_within_{hours:g}h"
    return predicate


def all_items_known(page: Page) -> bool:
    """Smart stop: the consumer found nothing new on this page."""
    return page.new_items == 0


class Paginator:
    """Single pagination run over one endpoint.

    Each call to paginate() starts from first_token with a fresh state.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        max_pages: int,
        clock: Optional[Clock] = None,
        policy: Optional[RetryPolicy] = None,
        first_token: Token = None,
        name: str = "pages",
    ):
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self.config = config
        self.max_pages = max_pages
        self.clock = clock or Clock()
        self.policy = policy or RetryPolicy(config, self.clock)
        self.first_token = first_token
        self.name = name

        self.pages_fetched = 0
        self.stop_reason: Optional[str] = None
        self.last_error: Optional[MalformedResponse] = None

    def _stop(self, reason: str) -> None:
        self.stop_reason = reason
        logger.info(f"{self.name}: stopping after page {self.pages_fetched} ({reason})")

    async def paginate(
        self,
        fetch: FetchPage,
        decode: Decode,
        stop_when: Sequence[StopPredicate] = (),
    ) -> AsyncIterator[Page]:
        """Yield decoded pages until a stop condition fires.

        Stop conditions, first to fire: empty page, no continuation token,
        max_pages reached, any stop_when predicate. Predicates run after the
        consumer has handled the page, so they can read page.new_items.

        Raises:
            RateLimited: when a page stays rate limited after every retry
            AuthExpired: on the first 401/403
        """
        self.pages_fetched = 0
        self.stop_reason = None
        self.last_error = None
        token = self.first_token
        index = 1

        while True:
            logger.info(f"{self.name}: fetching page {index} (token={token})")
            try:
                raw = await self.policy.call(
                    lambda: fetch(token), description=f"{self.name} page {index}"
                )
                items = decode(raw.payload)
            except RateLimited as e:
                e.pages_fetched = self.pages_fetched
                raise
            except MalformedResponse as e:
                self.last_error = e
                logger.error(f"{self.name}: malformed page {index}: {e}")
                self._stop("malformed response")
                return

            raw.index = index
            if not items:
                self._stop("empty page")
                return

            self.pages_fetched += 1
            page = Page(raw=raw, items=items)
            yield page

            for predicate in stop_when:
                if predicate(page):
                    self._stop(getattr(predicate, "__name__", "stop predicate"))
                    return

            if raw.next_token is None:
                self._stop("no continuation token")
                return

            if index >= self.max_pages:
                logger.warning(f"{self.name}: reached max pages ({self.max_pages})")
                self._stop("max pages")
                return

            token = raw.next_token
            index += 1
            await self.clock.sleep(self.config.pause_between_pages)


async def collect_pages(
    paginator: Paginator,
    fetch: FetchPage,
    decode: Decode,
    stop_when: Sequence[StopPredicate] = (),
) -> list[Page]:
    """Gather every page; on RateLimited attach the pages gathered so far."""
    pages: list[Page] = []
    try:
        async for page in paginator.paginate(fetch, decode, stop_when):
            pages.append(page)
    except RateLimited as e:
        e.partial = pages
        raise
    return pages
