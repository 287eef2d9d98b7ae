"""Tests for gemplanner.planning.versions — npm dist-tag lookups."""

from __future__ import annotations

import asyncio
from collections import Counter

import httpx
import pytest

from gemplanner.planning.models import Dependency
from gemplanner.planning.versions import NpmVersionResolver


def _resolver(handler) -> NpmVersionResolver:
    return NpmVersionResolver(registry_url="https://registry.test/", transport=httpx.MockTransport(handler))


def _package(request: httpx.Request) -> str:
    # /-/package/<name>/dist-tags, name percent-encoded
    return request.url.raw_path.decode().split("/")[3]


class TestResolveLatestVersions:
    @pytest.mark.asyncio
    async def test_pins_latest(self):
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json={"latest": "2.3.4", "next": "3.0.0-rc.1"})

        deps = [Dependency(name="zod", version="^1.0.0", purpose="validation", type="runtime")]
        resolved = await _resolver(handler).resolve_latest_versions(deps)

        assert resolved == [Dependency(name="zod", version="^2.3.4", purpose="validation", type="runtime")]
        assert urls == ["https://registry.test/-/package/zod/dist-tags"]
        # Input is not mutated
        assert deps[0].version == "^1.0.0"

    @pytest.mark.asyncio
    async def test_scoped_name_is_encoded(self):
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.raw_path.decode())
            return httpx.Response(200, json={"latest": "1.0.0"})

        await _resolver(handler).resolve_latest_versions([Dependency(name="@tanstack/query")])
        assert len(paths) == 1
        assert "tanstack%2Fquery/dist-tags" in paths[0]

    @pytest.mark.asyncio
    async def test_failure_keeps_original_version(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        resolved = await _resolver(handler).resolve_latest_versions([Dependency(name="left-pad", version="1.0.0")])
        assert resolved[0].version == "1.0.0"

    @pytest.mark.asyncio
    async def test_not_found_without_version_uses_wildcard(self):
        resolved = await _resolver(lambda request: httpx.Response(404)).resolve_latest_versions(
            [Dependency(name="no-such-package")]
        )
        assert resolved[0].version == "*"

    @pytest.mark.asyncio
    async def test_missing_latest_tag(self):
        resolved = await _resolver(lambda request: httpx.Response(200, json={"beta": "0.1.0"})).resolve_latest_versions(
            [Dependency(name="thing", version="^0.0.1")]
        )
        assert resolved[0].version == "^0.0.1"

    @pytest.mark.asyncio
    async def test_duplicates_queried_once(self):
        calls: Counter[str] = Counter()

        def handler(request: httpx.Request) -> httpx.Response:
            calls[_package(request)] += 1
            return httpx.Response(200, json={"latest": "18.3.1"})

        deps = [Dependency(name="react", purpose="ui"), Dependency(name="react", purpose="again")]
        resolved = await _resolver(handler).resolve_latest_versions(deps)

        assert calls["react"] == 1
        assert [d.version for d in resolved] == ["^18.3.1", "^18.3.1"]
        assert [d.purpose for d in resolved] == ["ui", "again"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            name = _package(request)
            if name == "pkg-3":
                await asyncio.sleep(0.05)
                return httpx.Response(500)
            return httpx.Response(200, json={"latest": f"{name[4:]}.0.0"})

        deps = [Dependency(name=f"pkg-{i}", version="0.0.1") for i in range(10)]
        resolved = await _resolver(handler).resolve_latest_versions(deps)

        assert [d.name for d in resolved] == [f"pkg-{i}" for i in range(10)]
        for i, dep in enumerate(resolved):
            assert dep.version == ("0.0.1" if i == 3 else f"^{i}.0.0")

    @pytest.mark.asyncio
    async def test_hanging_lookup_does_not_block_batch(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            name = _package(request)
            if name == "pkg-7":
                await asyncio.sleep(30)
            return httpx.Response(200, json={"latest": f"{name[4:]}.1.0"})

        resolver = NpmVersionResolver(
            registry_url="https://registry.test", timeout=0.2, transport=httpx.MockTransport(handler)
        )
        deps = [Dependency(name=f"pkg-{i}", version="0.0.1") for i in range(10)]

        resolved = await asyncio.wait_for(resolver.resolve_latest_versions(deps), timeout=5)

        assert [d.name for d in resolved] == [f"pkg-{i}" for i in range(10)]
        for i, dep in enumerate(resolved):
            assert dep.version == ("0.0.1" if i == 7 else f"^{i}.1.0")

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no lookups expected")

        assert await _resolver(handler).resolve_latest_versions([]) == []
