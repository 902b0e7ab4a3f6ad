"""Minimal YouTube search by scraping the public results page."""

import json
import re
from dataclasses import asdict, dataclass
from typing import Any

import httpx
import structlog

log = structlog.get_logger(__name__)

SEARCH_URL = "https://www.youtube.com/results"
MAX_RESULTS = 5

# Without a browser UA the page is served without ytInitialData
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

_INITIAL_DATA_RE = re.compile(r"var ytInitialData\s*=\s*(\{.*?\});\s*</script>", re.DOTALL)
_VIDEO_ID_RE = re.compile(r'"videoId":"([A-Za-z0-9_-]{11})"')


@dataclass
class VideoResult:
    id: str
    title: str = ""
    channel: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def _text(node: Any) -> str:
    """Read YouTube's {"runs": [{"text": ...}]} or {"simpleText": ...} shapes."""
    if not isinstance(node, dict):
        return ""
    if "simpleText" in node:
        return str(node["simpleText"])
    runs = node.get("runs") or []
    return "".join(str(run.get("text", "")) for run in runs if isinstance(run, dict))


def _videos_from_initial_data(data: dict[str, Any]) -> list[VideoResult]:
    sections = (
        data.get("contents", {})
        .get("twoColumnSearchResultsRenderer", {})
        .get("primaryContents", {})
        .get("sectionListRenderer", {})
        .get("contents", [])
    )

    results: list[VideoResult] = []
    for section in sections:
        items = section.get("itemSectionRenderer", {}).get("contents", [])
        for item in items:
            video = item.get("videoRenderer")
            if not video or not video.get("videoId"):
                continue
            results.append(
                VideoResult(
                    id=video["videoId"],
                    title=_text(video.get("title")),
                    channel=_text(video.get("ownerText") or video.get("longBylineText")),
                )
            )
            if len(results) >= MAX_RESULTS:
                return results
    return results


def _videos_from_raw_html(html: str) -> list[VideoResult]:
    seen: list[str] = []
    for video_id in _VIDEO_ID_RE.findall(html):
        if video_id not in seen:
            seen.append(video_id)
        if len(seen) >= MAX_RESULTS:
            break
    return [VideoResult(id=video_id) for video_id in seen]


def parse_search_page(html: str) -> list[VideoResult]:
    """Extract up to five videos from a results page, in page order."""
    match = _INITIAL_DATA_RE.search(html)
    if match:
        try:
            data = json.loads(match.group(1))
        except ValueError:
            data = None
        if isinstance(data, dict):
            try:
                videos = _videos_from_initial_data(data)
            except (AttributeError, TypeError):
                videos = []
            if videos:
                return videos
    return _videos_from_raw_html(html)


async def search_youtube(
    query: str, client: httpx.AsyncClient | None = None, timeout: float = 10.0
) -> list[VideoResult]:
    """Search YouTube. Returns an empty list on any failure."""
    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
            return await search_youtube(query, own_client)

    try:
        resp = await client.get(
            SEARCH_URL,
            params={"search_query": query},
            headers={"User-Agent": USER_AGENT, "Accept-Language": "en-US,en;q=0.9"},
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        log.warning("YouTube search failed", query=query, error=str(e))
        return []

    results = parse_search_page(resp.text)
    log.debug("YouTube search", query=query, results=len(results))
    return results
