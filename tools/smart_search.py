"""Natural-language "play X on Y" search.

Tries a deep link into the target app first. If that is not possible it
drives the TV's universal search with blind, timed key presses and picks the
first result. Nothing on the TV confirms any of these steps.
"""

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import structlog

from devices.errors import NotConnectedError, TVError

from .tv_tools import TVCommands
from .youtube import VideoResult, search_youtube

log = structlog.get_logger(__name__)

DEFAULT_APP = "YouTube"

# Checked in order, first match wins
APP_KEYWORDS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bon\s+netflix\b|\bnetflix\b", re.IGNORECASE), "Netflix"),
    (re.compile(r"\bon\s+disney\b\s*\+?|\bdisney\b\s*\+?", re.IGNORECASE), "Disney+"),
    (re.compile(r"\bon\s+hulu\b|\bhulu\b", re.IGNORECASE), "Hulu"),
    (
        re.compile(r"\bon\s+hbo\b(\s*max\b)?|\bhbo\b(\s*max\b)?|\bon\s+max\b", re.IGNORECASE),
        "HBO Max",
    ),
    (
        re.compile(
            r"\bon\s+prime\b(\s*video\b)?|\bprime\s*video\b|\bon\s+amazon\b|\bamazon\b",
            re.IGNORECASE,
        ),
        "Prime Video",
    ),
    (re.compile(r"\bon\s+youtube\b|\byoutube\b", re.IGNORECASE), "YouTube"),
]

# "search for" must come before "search"
COMMAND_VERBS = re.compile(r"\b(put on|play|watch|find|search for|search|look up)\b", re.IGNORECASE)

# Seconds to wait after each fallback step
SMARTHUB_OPEN_DELAY = 3.0
SEARCH_INPUT_DELAY = 1.0
SEARCH_RESULTS_DELAY = 3.0
NAVIGATE_DELAY = 0.5


class SmartQuery(NamedTuple):
    app: str
    search: str


@dataclass
class SmartSearchResult:
    success: bool
    app: str
    search: str
    method: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "app": self.app,
            "search": self.search,
            "method": self.method,
            "error": self.error,
        }


def _strip_verbs(text: str) -> str:
    return " ".join(COMMAND_VERBS.sub(" ", text).split())


def parse_smart_query(query: str) -> SmartQuery:
    """Split a free-text request into (app, search term).

    >>> parse_smart_query("play stranger things on netflix")
    SmartQuery(app='Netflix', search='stranger things')
    """
    for pattern, app in APP_KEYWORDS:
        if pattern.search(query):
            return SmartQuery(app, _strip_verbs(pattern.sub(" ", query)))
    return SmartQuery(DEFAULT_APP, _strip_verbs(query))


@dataclass
class ScriptStep:
    name: str
    action: Callable[[], Awaitable[None]]
    delay: float = 0.0


@dataclass
class KeyboardSearchScript:
    """Sequential key presses on the universal search screen.

    Steps run in order with a fixed pause after each. A step that fails to
    dispatch is logged and skipped; the script carries on regardless.
    """

    steps: list[ScriptStep]
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    _cancelled: bool = field(default=False, init=False)

    @classmethod
    def for_term(
        cls,
        commands: TVCommands,
        term: str,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> "KeyboardSearchScript":
        def press(key: str) -> Callable[[], Awaitable[None]]:
            return lambda: commands.send_key(key)

        return cls(
            steps=[
                ScriptStep("open_search", press("KEY_SMART_HUB"), SMARTHUB_OPEN_DELAY),
                ScriptStep("type_term", lambda: commands.send_text(term), SEARCH_INPUT_DELAY),
                ScriptStep("submit", press("KEY_ENTER"), SEARCH_RESULTS_DELAY),
                ScriptStep("focus_first_result", press("KEY_DOWN"), NAVIGATE_DELAY),
                ScriptStep("select_result", press("KEY_ENTER")),
            ],
            sleep=sleep,
        )

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(self) -> bool:
        """Run all steps. Returns False only if cancelled part-way."""
        for step in self.steps:
            if self._cancelled:
                log.info("Keyboard search cancelled", before_step=step.name)
                return False
            try:
                await step.action()
            except TVError as e:
                log.warning("Keyboard search step failed", step=step.name, error=str(e))
            if step.delay:
                await self.sleep(step.delay)
        return True


class SmartSearch:
    """Deep link first, keyboard automation as a fallback."""

    def __init__(
        self,
        commands: TVCommands,
        youtube_search: Callable[[str], Awaitable[list[VideoResult]]] = search_youtube,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.commands = commands
        self.youtube_search = youtube_search
        self.sleep = sleep

    async def search(self, query: str) -> SmartSearchResult:
        if not self.commands.manager.connected:
            return SmartSearchResult(
                success=False, app="", search="", error=str(NotConnectedError())
            )

        app, search = parse_smart_query(query)
        term = search or query
        log.info("Smart search", term=term, app=app)

        if await self._try_deep_link(app, term):
            return SmartSearchResult(success=True, app=app, search=term, method="deep_link")

        script = KeyboardSearchScript.for_term(self.commands, term, sleep=self.sleep)
        await script.run()
        log.info("Selected first search result", term=term)
        return SmartSearchResult(success=True, app=app, search=term, method="keyboard")

    async def _try_deep_link(self, app: str, term: str) -> bool:
        if app == "YouTube":
            videos = await self.youtube_search(term)
            if not videos:
                log.info("No YouTube results, using keyboard search", term=term)
                return False
            first = videos[0]
            content_id = meta_tag = first.id
        else:
            content_id, meta_tag = term, None

        try:
            await self.commands.cast_to_tv(app, content_id, meta_tag)
        except TVError as e:
            log.info("Deep link failed, using keyboard search", app=app, error=str(e))
            return False
        return True
