"""Realtime Database REST adapter (streaming subscription + range queries)."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import aiohttp

from smartfarm.exceptions import TelemetrySourceError
from smartfarm.sources.base import ErrorCallback, ValueCallback

_logger = logging.getLogger(__name__)

_STREAM_TIMEOUT = aiohttp.ClientTimeout(total=None)


def _segments(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _set_at(node: Any, segments: list[str], data: Any) -> Any:
    """Return *node* with *data* written at *segments*.

    ``None`` deletes, and objects left empty collapse to ``None`` the way
    the database reports them.
    """
    if not segments:
        return copy.deepcopy(data)
    head, rest = segments[0], segments[1:]
    base = dict(node) if isinstance(node, dict) else {}
    child = _set_at(base.get(head), rest, data)
    if child is None or child == {}:
        base.pop(head, None)
    else:
        base[head] = child
    return base or None


async def iter_sse_events(lines: AsyncIterable[bytes]) -> AsyncIterator[tuple[str, str]]:
    """Parse a ``text/event-stream`` body into ``(event, data)`` pairs."""
    event = ""
    data_lines: list[str] = []
    async for raw in lines:
        line = raw.decode("utf-8").rstrip("\r\n")
        if not line:
            if event or data_lines:
                yield event, "\n".join(data_lines)
            event, data_lines = "", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)
    if event or data_lines:
        yield event, "\n".join(data_lines)


class FirebaseStream:
    """Keeps the value tree of a streamed path and reports every change.

    The server sends ``put`` (replace at a sub-path) and ``patch`` (merge
    children at a sub-path) events; after each one the full value is
    passed to ``on_value``.
    """

    def __init__(self, path: str, on_value: ValueCallback) -> None:
        self.path = path
        self._on_value = on_value
        self.value: Any = None

    def handle(self, event: str, data: str) -> None:
        if event in ("put", "patch"):
            try:
                body = json.loads(data)
            except json.JSONDecodeError as exc:
                raise TelemetrySourceError(f"Invalid {event} payload: {data[:200]}", path=self.path) from exc
            if not isinstance(body, dict):
                raise TelemetrySourceError(f"Unexpected {event} payload: {data[:200]}", path=self.path)
            segments = _segments(str(body.get("path") or "/"))
            if event == "put":
                self.value = _set_at(self.value, segments, body.get("data"))
            else:
                patch = body.get("data")
                if isinstance(patch, dict):
                    for key, child in patch.items():
                        self.value = _set_at(self.value, segments + _segments(str(key)), child)
            self._on_value(copy.deepcopy(self.value))
            return
        if event == "keep-alive":
            return
        if event in ("cancel", "auth_revoked"):
            raise TelemetrySourceError(f"Stream {event}: {data}", path=self.path)
        _logger.debug("Ignoring stream event %r for %s", event, self.path)

    async def consume(self, lines: AsyncIterable[bytes]) -> None:
        async for event, data in iter_sse_events(lines):
            self.handle(event, data)
        raise TelemetrySourceError("Stream closed by server", path=self.path)


class StreamSubscription:
    """Running stream task; cancelling closes the HTTP response."""

    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        self._task.cancel()


class FirebaseSource:
    """Telemetry source backed by the Realtime Database REST API."""

    def __init__(
        self,
        database_url: str,
        http_session: aiohttp.ClientSession,
        *,
        auth_token: str | None = None,
    ) -> None:
        self._base_url = database_url.rstrip("/")
        self._http = http_session
        self._auth_token = auth_token

    def url_for(self, path: str) -> str:
        return f"{self._base_url}/{'/'.join(_segments(path))}.json"

    def _params(self, **extra: str) -> dict[str, str]:
        params = dict(extra)
        if self._auth_token:
            params["auth"] = self._auth_token
        return params

    async def query_last(self, path: str, limit: int) -> Any:
        """Return the last *limit* children of *path* ordered by key."""
        url = self.url_for(path)
        params = self._params(orderBy='"$key"', limitToLast=str(limit))
        _logger.debug("GET %s limitToLast=%d", url, limit)

        try:
            async with self._http.get(url, params=params) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise TelemetrySourceError(
                        f"HTTP {resp.status} from {path}: {text[:200]}",
                        path=path,
                        status_code=resp.status,
                    )
        except TelemetrySourceError:
            raise
        except aiohttp.ClientError as exc:
            raise TelemetrySourceError(f"Query of {path} failed: {exc}", path=path) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TelemetrySourceError(f"Invalid JSON from {path}: {text[:200]}", path=path) from exc

    async def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
    ) -> StreamSubscription:
        """Open an event stream on *path*; raises if the stream cannot be opened."""
        url = self.url_for(path)
        _logger.debug("STREAM %s", url)

        try:
            resp = await self._http.get(
                url,
                params=self._params(),
                headers={"accept": "text/event-stream"},
                timeout=_STREAM_TIMEOUT,
            )
        except aiohttp.ClientError as exc:
            raise TelemetrySourceError(f"Stream on {path} failed: {exc}", path=path) from exc

        if resp.status != 200:
            text = await resp.text()
            resp.release()
            raise TelemetrySourceError(
                f"HTTP {resp.status} opening stream on {path}: {text[:200]}",
                path=path,
                status_code=resp.status,
            )

        stream = FirebaseStream(path, on_value)

        async def _run() -> None:
            try:
                await stream.consume(resp.content)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if on_error is not None:
                    on_error(exc)
                else:
                    _logger.warning("Stream on %s failed", path, exc_info=True)
            finally:
                resp.close()

        return StreamSubscription(asyncio.create_task(_run()))
