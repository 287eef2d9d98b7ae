"""Pins plan dependencies to the latest published npm version.

Best-effort enrichment: any failure for one package leaves that entry's
version as the generator supplied it and never affects the others.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from urllib.parse import quote

import httpx

from gemplanner.config import DEFAULT_NPM_REGISTRY_URL
from gemplanner.planning.models import Dependency

logger = logging.getLogger(__name__)

REGISTRY_TIMEOUT = 10.0  # seconds


class NpmVersionResolver:
    """Resolves one batch of dependencies.

    Lookups are memoised per package name for the lifetime of the instance,
    so construct a fresh resolver per batch.
    """

    def __init__(
        self,
        registry_url: str = DEFAULT_NPM_REGISTRY_URL,
        timeout: float = REGISTRY_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._registry_url = registry_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._lookups: dict[str, asyncio.Task[str | None]] = {}

    async def resolve_latest_versions(self, dependencies: list[Dependency]) -> list[Dependency]:
        """Return copies of ``dependencies`` in input order with versions set to ``^<latest>``."""
        if not dependencies:
            return []
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            latest = await asyncio.gather(*(self._latest(client, d.name) for d in dependencies))

        resolved: list[Dependency] = []
        for dep, version in zip(dependencies, latest):
            if version:
                resolved.append(dataclasses.replace(dep, version=f"^{version}"))
            else:
                resolved.append(dataclasses.replace(dep, version=dep.version or "*"))
        return resolved

    def _latest(self, client: httpx.AsyncClient, name: str) -> asyncio.Task[str | None]:
        # Share the in-flight lookup so duplicate names in a batch query once
        task = self._lookups.get(name)
        if task is None:
            task = asyncio.ensure_future(self._fetch_latest(client, name))
            self._lookups[name] = task
        return task

    async def _fetch_latest(self, client: httpx.AsyncClient, name: str) -> str | None:
        url = f"{self._registry_url}/-/package/{quote(name, safe='')}/dist-tags"
        try:
            # httpx timeouts cover each phase separately; bound the whole lookup too
            response = await asyncio.wait_for(
                client.get(url, headers={"accept": "application/json"}), timeout=self._timeout
            )
            if not response.is_success:
                logger.info(f"Registry returned HTTP {response.status_code} for {name}")
                return None
            tags = response.json()
        except Exception as e:
            logger.info(f"Version lookup failed for {name}: {e}")
            return None

        latest = tags.get("latest") if isinstance(tags, dict) else None
        if not isinstance(latest, str) or not latest:
            return None
        return latest
