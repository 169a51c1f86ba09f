"""Container the active module's markup is rendered into."""

from __future__ import annotations

import html
import logging
from collections.abc import Callable
from typing import Any

_logger = logging.getLogger(__name__)

RenderListener = Callable[[str, bool], Any]


def error_placeholder(message: str) -> str:
    """Inert markup shown in place of a module that failed to load."""
    return f'<div class="card"><p>Error loading module: {html.escape(message)}</p></div>'


class DisplaySurface:
    """Holds the markup currently shown to the user.

    The surface never interprets markup. Render listeners receive the new
    content and whether it is an error placeholder.
    """

    def __init__(self) -> None:
        self._content = ""
        self._is_error = False
        self._listeners: list[RenderListener] = []

    @property
    def content(self) -> str:
        return self._content

    @property
    def is_error(self) -> bool:
        return self._is_error

    def add_listener(self, listener: RenderListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def render(self, markup: str) -> None:
        self._set(markup, is_error=False)

    def render_error(self, message: str) -> None:
        self._set(error_placeholder(message), is_error=True)

    def _set(self, content: str, *, is_error: bool) -> None:
        self._content = content
        self._is_error = is_error
        for listener in list(self._listeners):
            try:
                listener(content, is_error)
            except Exception:
                _logger.debug("Render listener failed", exc_info=True)
