"""Module package fetchers (HTTP and local directory)."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from smartfarm.exceptions import ModuleLoadError
from smartfarm.models.package import ModulePackage

_logger = logging.getLogger(__name__)


class PackageFetcher(Protocol):
    """Structural fetcher interface used by the module loader.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementations concrete.
    """

    async def fetch(self, name: str) -> ModulePackage:
        ...


def parse_package(name: str, text: str) -> ModulePackage:
    """Decode a package document; raises :class:`ModuleLoadError` when malformed."""
    try:
        body: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ModuleLoadError(f"Invalid JSON in package {name!r}: {text[:200]}", module=name) from exc

    if not isinstance(body, dict):
        raise ModuleLoadError(f"Package {name!r} is not a JSON object", module=name)

    try:
        package = ModulePackage.model_validate(body)
    except ValidationError as exc:
        raise ModuleLoadError(f"Invalid package {name!r}: {exc}", module=name) from exc

    if not package.name:
        package = package.model_copy(update={"name": name})
    return package


class HttpPackageFetcher:
    """Fetch ``<base_url>/<name>.json`` over HTTP, bypassing caches."""

    def __init__(self, base_url: str, http_session: aiohttp.ClientSession) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session

    def url_for(self, name: str) -> str:
        return f"{self._base_url}/{name}.json"

    async def fetch(self, name: str) -> ModulePackage:
        url = self.url_for(name)
        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers={"cache-control": "no-store"}) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise ModuleLoadError(
                        f"Failed to load module {name} (status {resp.status})",
                        module=name,
                        status_code=resp.status,
                    )
        except ModuleLoadError:
            raise
        except aiohttp.ClientError as exc:
            raise ModuleLoadError(f"Request for module {name} failed: {exc}", module=name) from exc

        return parse_package(name, text)


class FilePackageFetcher:
    """Read ``<directory>/<name>.json`` from the local filesystem."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    async def fetch(self, name: str) -> ModulePackage:
        if not name or Path(name).name != name:
            raise ModuleLoadError(f"Invalid module name: {name!r}", module=name)
        path = self._directory / f"{name}.json"
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, path.read_text, "utf-8")
        except OSError as exc:
            raise ModuleLoadError(f"Failed to load module {name}: {exc}", module=name) from exc
        return parse_package(name, text)
