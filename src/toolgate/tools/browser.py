"""The page-automation surface tools act on.

toolgate never drives a browser itself. Tools talk to a `BrowserActions`
implementation supplied per session; `DetachedBrowser` is the in-memory
stand-in used when no automation back end is wired in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

logger = logging.getLogger(__name__)


@runtime_checkable
class BrowserActions(Protocol):
    """Opaque side-effecting page actions available to tool executors."""

    async def navigate(self, url: str) -> None: ...

    async def click(self, selector: str) -> None: ...

    async def fill(self, selector: str, text: str) -> None: ...

    async def screenshot(self, *, full_page: bool = False) -> bytes: ...

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None: ...

    async def go_back(self) -> None: ...

    async def text_content(self, selector: str) -> str | None: ...

    async def evaluate(self, expression: str) -> Any: ...

    async def new_tab(self, url: str | None = None) -> str: ...

    async def close_tab(self, tab_id: str) -> None: ...

    async def aclose(self) -> None: ...


@dataclass
class _Tab:
    history: list[str] = field(default_factory=list)

    @property
    def url(self) -> str:
        return self.history[-1] if self.history else "about:blank"


class DetachedBrowser:
    """A BrowserActions implementation with no browser behind it.

    It keeps tab and history bookkeeping so tools behave consistently, but
    pages have no content: screenshots are empty, text lookups return "" and
    script evaluation returns None.
    """

    def __init__(self) -> None:
        self._tabs: dict[str, _Tab] = {}
        self._current = self._open_tab()
        self.closed = False

    def _open_tab(self) -> str:
        tab_id = uuid4().hex[:8]
        self._tabs[tab_id] = _Tab()
        return tab_id

    @property
    def current_url(self) -> str:
        return self._tabs[self._current].url

    @property
    def tab_ids(self) -> list[str]:
        return list(self._tabs)

    async def navigate(self, url: str) -> None:
        logger.debug("navigate %s", url)
        self._tabs[self._current].history.append(url)

    async def click(self, selector: str) -> None:
        logger.debug("click %s", selector)

    async def fill(self, selector: str, text: str) -> None:
        logger.debug("fill %s", selector)

    async def screenshot(self, *, full_page: bool = False) -> bytes:
        return b""

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> None:
        logger.debug("wait_for_selector %s (%d ms)", selector, timeout_ms)

    async def go_back(self) -> None:
        history = self._tabs[self._current].history
        if history:
            history.pop()

    async def text_content(self, selector: str) -> str | None:
        return ""

    async def evaluate(self, expression: str) -> Any:
        return None

    async def new_tab(self, url: str | None = None) -> str:
        tab_id = self._open_tab()
        self._current = tab_id
        if url:
            await self.navigate(url)
        return tab_id

    async def close_tab(self, tab_id: str) -> None:
        if tab_id not in self._tabs:
            raise ValueError(f"No tab with id {tab_id}")
        del self._tabs[tab_id]
        if not self._tabs:
            self._current = self._open_tab()
        elif tab_id == self._current:
            self._current = next(reversed(self._tabs))

    async def aclose(self) -> None:
        self._tabs.clear()
        self.closed = True
