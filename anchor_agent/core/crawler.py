"""Location news crawler: community discussion context for the chat prompt.

Triggers a discovery crawl of the subreddits mapped to a location, polls the
snapshot until it is ready, filters and ranks the posts, and renders a
bounded text briefing. Crawl failures never reach the chat turn: `fetch`
records them on the result and `build_context` keeps whatever succeeded.
"""

from __future__ import annotations

import asyncio
import math
import re
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from anchor_agent.config import get_settings
from anchor_agent.core.errors import CrawlError, CrawlTimeoutError
from anchor_agent.core.tolerant_json import iter_records, parse_records
from anchor_agent.utils.text import normalize_whitespace, parse_timestamp, time_ago, truncate

logger = structlog.get_logger()

API_BASE = "https://api.brightdata.com/datasets/v3"

LOCATION_SUBREDDITS: dict[str, list[str]] = {
    "ottawa": ["ottawa"],
    "toronto": ["toronto"],
    "montreal": ["montreal"],
    "vancouver": ["vancouver"],
    "calgary": ["Calgary"],
    "edmonton": ["Edmonton"],
    "winnipeg": ["Winnipeg"],
    "halifax": ["halifax"],
    "saskatoon": ["saskatoon"],
    "regina": ["regina"],
    "london": ["londonontario"],
    "kitchener": ["kitchener"],
    "hamilton": ["Hamilton"],
    "windsor": ["windsorontario"],
    "barrie": ["barrie"],
    "kingston": ["KingstonOntario"],
    "atlantic": ["Maritime"],
    "northern-ontario": ["ontario"],
    "british-columbia": ["britishcolumbia"],
}

CITY_ALIASES: dict[str, list[str]] = {
    "ottawa": ["ottawa-gatineau", "ncr", "national capital region", "bytown"],
    "toronto": ["gta", "greater toronto area", "the 6ix", "hogtown"],
    "montreal": ["mtl", "ville-marie", "québec"],
    "vancouver": ["van", "vancity", "lower mainland", "metro vancouver"],
    "calgary": ["yyc", "cowtown"],
    "edmonton": ["yeg", "e-town"],
    "winnipeg": ["wpg", "the peg"],
    "halifax": ["hfx", "haligonia"],
}

SKIP_PATTERNS = (
    "weekly thread", "daily thread", "monthly thread", "megathread",
    "looking for", "where to", "recommendations", "help me find",
    "eli5", "explain like", "shower thought", "unpopular opinion",
    "am i the only one", "does anyone else", "dae ",
)

NEWS_INDICATORS = (
    "breaking", "news", "report", "announced", "confirmed", "update",
    "developing", "just in", "alert", "statement", "press release",
    "government", "council", "mayor", "minister", "official",
    "police", "fire", "emergency", "accident", "incident",
    "budget", "funding", "investment", "project", "construction",
    "election", "vote", "policy", "law", "bill", "regulation",
)

BREAKING_KEYWORDS = ("breaking", "urgent", "alert", "just in", "developing", "live")

NEWS_KEYWORDS = (
    "news", "report", "announced", "confirmed", "update", "statement",
    "press release", "official", "government", "council", "mayor",
    "minister", "police", "fire", "emergency", "budget", "funding",
    "election", "vote", "policy", "law", "bill", "regulation",
)

LOCAL_KEYWORDS = (
    "city", "downtown", "local", "community", "neighborhood", "residents",
    "construction", "project", "development", "infrastructure", "transit",
    "school", "hospital", "park", "road", "bridge",
)

POSTS_PER_SUBREDDIT = 2
MAX_ARTICLES = 8
MAX_COMMENTS = 5
CONTENT_LIMIT = 500
COMMENT_LIMIT = 300
BRIEFING_STORIES = 5
LEAD_REACTIONS = 3

LEADING_INT = re.compile(r"^\s*[-+]?\d+")


@dataclass
class Comment:
    text: str
    upvotes: int
    author: str
    time_ago: str
    replies_count: int = 0


@dataclass
class Article:
    headline: str
    content: str
    source: str
    url: str | None = None
    score: int = 0
    num_comments: int = 0
    publish_date: datetime | None = None
    relevance_score: int = 0
    top_comments: list[Comment] = field(default_factory=list)


@dataclass
class CrawlResult:
    """Outcome of one location crawl; `error` is set when `success` is False."""

    location: str
    success: bool
    query: str = ""
    articles: list[Article] = field(default_factory=list)
    snapshot_id: str | None = None
    subreddits: list[str] = field(default_factory=list)
    results_count: int = 0
    error: str | None = None
    crawl_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def supported_locations() -> list[str]:
    return list(LOCATION_SUBREDDITS)


def is_location_supported(location: str | None) -> bool:
    return bool(location) and location.lower() in LOCATION_SUBREDDITS


def subreddits_for(location: str) -> list[str]:
    return list(LOCATION_SUBREDDITS.get(location.lower(), []))


def location_aliases(location: str) -> list[str]:
    """The location itself plus known local nicknames."""
    base = location.lower()
    return [base, *CITY_ALIASES.get(base, [])]


def _to_int(value: Any) -> int:
    """Leading integer of a count that may arrive as a string; 0 when absent."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    match = LEADING_INT.match(str(value))
    return int(match.group()) if match else 0


def _text(value: Any) -> str:
    """A record field as text; anything that is not a string counts as missing."""
    return value if isinstance(value, str) else ""


def _query_words(query: str) -> list[str]:
    return [word for word in query.lower().split() if len(word) > 2]


def is_newsworthy(post: dict[str, Any], query: str = "") -> bool:
    """Filter gate: title present, not a recurring thread, enough upvotes."""
    title = _text(post.get("title")).lower()
    if not title:
        return False
    content = _text(post.get("description")).lower()
    search_text = f"{title} {content}"

    if any(pattern in title for pattern in SKIP_PATTERNS):
        return False

    has_news = any(word in title or word in content for word in NEWS_INDICATORS)

    if query.strip():
        words = _query_words(query)
        if not any(word in search_text for word in words) and not has_news:
            return False

    upvotes = _to_int(post.get("num_upvotes"))
    if upvotes < 2:
        return False
    if has_news and upvotes < 5:
        return False
    return True


def relevance_score(
    title: str,
    content: str,
    upvotes: int,
    comments: int,
    posted_at: datetime | None,
    location: str,
    query: str = "",
    now: datetime | None = None,
) -> int:
    """Weighted relevance: engagement, recency, location, query and topic keywords."""
    score = math.log(upvotes + 1) * 3 + math.log(comments + 1) * 2

    if upvotes > 0 and comments / upvotes > 0.1:
        score += 5

    if posted_at is not None:
        now = now or datetime.now(timezone.utc)
        hours_ago = (now - posted_at).total_seconds() / 3600
        if hours_ago < 24:
            score += 8
        if hours_ago < 6:
            score += 12
        if hours_ago < 1:
            score += 15

    title_l = title.lower()
    content_l = content.lower()
    location_l = location.lower()

    if location_l in title_l:
        score += 20
    if location_l in content_l:
        score += 12

    for alias in location_aliases(location):
        if alias in title_l:
            score += 15
        if alias in content_l:
            score += 8

    for word in _query_words(query):
        if word in title_l:
            score += 25
        if word in content_l:
            score += 18

    for keywords, in_title, in_body in (
        (BREAKING_KEYWORDS, 35, 20),
        (NEWS_KEYWORDS, 25, 15),
        (LOCAL_KEYWORDS, 20, 12),
    ):
        for keyword in keywords:
            if keyword in title_l:
                score += in_title
            if keyword in content_l:
                score += in_body

    word_count = len(content.split(" "))
    if word_count > 50:
        score += 5
    if word_count > 200:
        score += 8

    return round(score)


def top_comments(comments: Iterable[dict[str, Any]] | None, now: datetime | None = None) -> list[Comment]:
    if not isinstance(comments, list):
        return []
    valid = [c for c in comments if isinstance(c, dict) and _text(c.get("comment")).strip()]
    valid.sort(key=lambda c: _to_int(c.get("num_upvotes")), reverse=True)

    result = []
    for c in valid[:MAX_COMMENTS]:
        commented_at = parse_timestamp(c.get("date_of_comment"))
        result.append(
            Comment(
                text=normalize_whitespace(c["comment"])[:COMMENT_LIMIT],
                upvotes=_to_int(c.get("num_upvotes")),
                author=_text(c.get("user_commenting")) or "unknown",
                time_ago=time_ago(commented_at, now) if commented_at else "unknown",
                replies_count=_to_int(c.get("num_replies")),
            )
        )
    return result


def rank_posts(
    posts: Iterable[dict[str, Any]],
    location: str,
    query: str = "",
    now: datetime | None = None,
) -> list[Article]:
    """Filter, score and keep the best posts, highest relevance first."""
    articles = []
    for post in posts:
        if not isinstance(post, dict) or not is_newsworthy(post, query):
            continue
        title = _text(post.get("title"))
        content = _text(post.get("description"))
        upvotes = _to_int(post.get("num_upvotes"))
        comments = _to_int(post.get("num_comments"))
        posted_at = parse_timestamp(post.get("date_posted"))
        articles.append(
            Article(
                headline=title,
                content=normalize_whitespace(content)[:CONTENT_LIMIT],
                source=f"r/{_text(post.get('community_name')) or 'unknown'}",
                url=_text(post.get("url")) or None,
                score=upvotes,
                num_comments=comments,
                publish_date=posted_at,
                relevance_score=relevance_score(
                    title, content, upvotes, comments, posted_at,
                    location, query, now,
                ),
                top_comments=top_comments(post.get("comments"), now),
            )
        )
    articles.sort(key=lambda a: a.relevance_score, reverse=True)
    return articles[:MAX_ARTICLES]


def _engagement_level(article: Article) -> str:
    engagement = article.score + article.num_comments
    if engagement > 50:
        return "high"
    if engagement > 20:
        return "moderate"
    return "low"


def render_context(articles: list[Article], label: str, now: datetime | None = None) -> str:
    """Render the briefing block injected into the system instruction."""
    if not articles:
        return (
            f"No current community discussions found for {label}. You may want to discuss "
            "general topics or ask the user for more specific interests."
        )

    stories = sorted(articles, key=lambda a: a.relevance_score, reverse=True)[:BRIEFING_STORIES]

    def posted(article: Article) -> str:
        return time_ago(article.publish_date, now) if article.publish_date else "recently"

    lead, others = stories[0], stories[1:]
    lead_level = _engagement_level(lead)

    lines = [f"**BREAKING NEWS CONTEXT FOR {label.upper()}:**", ""]
    lines.append(f"**TOP STORY:** {lead.headline}")
    lines.append(f"Community Discussion: {lead.content}")
    lines.append(
        f"Source: {lead.source} | Posted: {posted(lead)} | Community Engagement: {lead_level}"
    )
    if lead.top_comments:
        lines.append("**Community Reactions:**")
        for comment in lead.top_comments[:LEAD_REACTIONS]:
            lines.append(f'   • "{comment.text}" ({comment.upvotes} upvotes, {comment.time_ago})')
    lines.append("")

    if others:
        lines.append("**OTHER DEVELOPING STORIES:**")
        for number, story in enumerate(others, start=2):
            lines.append(f"{number}. {story.headline}")
            if story.content:
                lines.append(f"   Community says: {truncate(story.content, 200)}")
            lines.append(f"   Source: {story.source} | {posted(story)}")
            if story.top_comments:
                reaction = story.top_comments[0]
                lines.append(
                    f'   Top reaction: "{truncate(reaction.text, 150)}" ({reaction.upvotes} upvotes)'
                )
            lines.append("")

    lines.append("**NEWS ANCHOR GUIDANCE:**")
    lines.extend(
        [
            "- These are current community discussions from Reddit, not traditional news sources",
            "- Present information conversationally, acknowledging it's from community discussions",
            "- Focus on community sentiment and local perspectives",
            '- Use phrases like "the community is discussing...", "locals are talking about...", '
            '"people are saying..."',
            "- Include community reactions and comments to show public sentiment",
            '- Reference specific community feedback when relevant (e.g., "One resident '
            'commented...", "The community is responding...")',
            "- The top story has significant community interest"
            if lead_level == "high"
            else "- These are emerging community conversations",
        ]
    )
    return "\n".join(lines) + "\n"


class CrawlContextAssembler:
    """Discovery-API client that turns locations into a prompt briefing."""

    def __init__(
        self,
        api_key: str,
        dataset_id: str,
        poll_interval: float = 3.0,
        deadline: float = 45.0,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_key = api_key
        self.dataset_id = dataset_id
        self.poll_interval = poll_interval
        self.deadline = deadline
        self._http = http_client
        self._sleep = sleep
        self._clock = clock

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _client(self) -> httpx.AsyncClient:
        return self._http or httpx.AsyncClient(timeout=30.0)

    async def _trigger(self, client: httpx.AsyncClient, subreddits: list[str]) -> str:
        body = [
            {
                "url": f"https://www.reddit.com/r/{subreddit}",
                "sort_by": "Hot",
                "sort_by_time": "Today",
                "num_of_posts": POSTS_PER_SUBREDDIT,
            }
            for subreddit in subreddits
        ]
        response = await client.post(
            f"{API_BASE}/trigger",
            params={
                "dataset_id": self.dataset_id,
                "include_errors": "true",
                "type": "discover_new",
                "discover_by": "subreddit_url",
            },
            headers=self._headers,
            json=body,
        )
        if response.status_code >= 400:
            raise CrawlError(f"discovery API error: {response.status_code}")
        snapshot_id = response.json().get("snapshot_id")
        if not snapshot_id:
            raise CrawlError("discovery API returned no snapshot id")
        return snapshot_id

    async def _wait_for_snapshot(
        self, client: httpx.AsyncClient, snapshot_id: str
    ) -> list[dict[str, Any]]:
        started = self._clock()
        while self._clock() - started < self.deadline:
            response = await client.get(f"{API_BASE}/snapshot/{snapshot_id}", headers=self._headers)
            if response.status_code >= 400:
                raise CrawlError(f"failed to check snapshot status: {response.status_code}")

            text = response.text
            # A ready snapshot may answer the status call with the records themselves.
            if '"post_id"' in text:
                return [r for r in iter_records(text) if r.get("post_id")]

            status = next(iter_records(text), None)
            if status is None:
                raise CrawlError("invalid snapshot status response")

            if status.get("status") == "completed":
                data = await client.get(
                    f"{API_BASE}/snapshot/{snapshot_id}/data", headers=self._headers
                )
                if data.status_code >= 400:
                    raise CrawlError(f"failed to fetch crawl data: {data.status_code}")
                return parse_records(data.text)
            if status.get("status") == "failed":
                raise CrawlError(f"crawl failed: {status.get('error') or 'unknown error'}")

            logger.debug("crawl.waiting", snapshot_id=snapshot_id, status=status.get("status"))
            await self._sleep(self.poll_interval)

        raise CrawlTimeoutError(f"snapshot {snapshot_id} not ready within {self.deadline}s")

    async def fetch(self, location: str, query: str = "") -> CrawlResult:
        """Crawl one location. Never raises; failures are recorded on the result."""
        subreddits = subreddits_for(location)
        client = self._client()
        try:
            if not self.api_key:
                raise CrawlError("discovery API key is not configured")
            if not subreddits:
                raise CrawlError(f"no subreddits configured for location: {location}")

            snapshot_id = await self._trigger(client, subreddits)
            logger.info("crawl.triggered", location=location, snapshot_id=snapshot_id)
            posts = await self._wait_for_snapshot(client, snapshot_id)
        except (CrawlError, httpx.HTTPError, ValueError) as e:
            logger.warning("crawl.failed", location=location, error=str(e))
            return CrawlResult(
                location=location, success=False, query=query, subreddits=subreddits, error=str(e)
            )
        finally:
            if self._http is None:
                await client.aclose()

        articles = rank_posts(posts, location, query)
        logger.info("crawl.completed", location=location, posts=len(posts), articles=len(articles))
        return CrawlResult(
            location=location,
            success=True,
            query=query,
            articles=articles,
            snapshot_id=snapshot_id,
            subreddits=subreddits,
            results_count=len(posts),
        )

    async def build_context(self, locations: list[str], query: str = "") -> str:
        """Crawl all locations concurrently and render one briefing.

        Returns an empty string when no crawl succeeded.
        """
        if not locations:
            return ""
        results = await asyncio.gather(
            *(self.fetch(location, query) for location in locations), return_exceptions=True
        )
        succeeded = [r for r in results if isinstance(r, CrawlResult) and r.success]
        for failure in results:
            if isinstance(failure, BaseException):
                logger.warning("crawl.unexpected_error", error=str(failure))
        if not succeeded:
            logger.info("crawl.no_context", locations=locations)
            return ""
        articles = [article for result in succeeded for article in result.articles]
        return render_context(articles, ", ".join(locations))


def get_crawler() -> CrawlContextAssembler:
    """Get CrawlContextAssembler instance."""
    settings = get_settings()
    return CrawlContextAssembler(
        settings.bright_data_key,
        settings.bright_data_dataset_id,
        poll_interval=settings.crawl_poll_interval,
        deadline=settings.crawl_deadline,
    )
