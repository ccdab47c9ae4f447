from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from labreports.adapters.logo_resolver import LogoCache, LogoResolver, LogoResolverConfig
from labreports.errors import ResourceFetchError
from labreports.report.blocks import LEFT_LOGO, RIGHT_LOGO


class _AssetServer:
    """httpx.MockTransport handler serving a fixed set of paths and counting requests."""

    def __init__(self, assets: dict[str, tuple[bytes, str]]):
        self.assets = assets
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        asset = self.assets.get(request.url.path)
        if asset is None:
            return httpx.Response(404)
        body, content_type = asset
        headers = {'content-type': content_type} if content_type else {}
        return httpx.Response(200, content=body, headers=headers)


def _resolver(server: _AssetServer, cache: LogoCache | None = None) -> LogoResolver:
    cfg = LogoResolverConfig(base_url='http://assets.test/app')
    return LogoResolver(cfg, cache, transport=httpx.MockTransport(server))


@pytest.fixture
def server(png_bytes) -> _AssetServer:
    return _AssetServer(
        {
            '/app/assets/left.png': (png_bytes, 'image/png'),
            '/app/assets/right.png': (png_bytes, 'image/png; charset=binary'),
            '/app/assets/mark.jpg': (b'\xff\xd8\xff', 'application/octet-stream'),
            '/app/assets/empty.png': (b'', 'image/png'),
        }
    )


class TestResolve:
    def test_data_url_is_returned_without_fetching(self, server, png_data_url):
        resolver = _resolver(server)
        assert asyncio.run(resolver.resolve(png_data_url)) == png_data_url
        assert server.requests == []

    def test_relative_url_is_joined_onto_base(self, server, png_bytes):
        resolver = _resolver(server)
        data_url = asyncio.run(resolver.resolve('assets/left.png'))
        assert server.requests == ['http://assets.test/app/assets/left.png']
        assert data_url == 'data:image/png;base64,' + base64.b64encode(png_bytes).decode('ascii')

    def test_absolute_url_used_as_is(self, server):
        resolver = _resolver(server)
        asyncio.run(resolver.resolve('http://assets.test/app/assets/right.png'))
        assert server.requests == ['http://assets.test/app/assets/right.png']

    def test_mime_type_guessed_from_path(self, server):
        data_url = asyncio.run(_resolver(server).resolve('assets/mark.jpg'))
        assert data_url.startswith('data:image/jpeg;base64,')

    def test_second_resolve_hits_cache(self, server):
        cache = LogoCache()
        resolver = _resolver(server, cache)

        async def _twice():
            first = await resolver.resolve('assets/left.png')
            second = await resolver.resolve('/app/assets/left.png')
            return first, second

        first, second = asyncio.run(_twice())
        assert first == second
        assert len(server.requests) == 1
        assert 'http://assets.test/app/assets/left.png' in cache

    def test_cache_is_shared_between_resolvers(self, server):
        cache = LogoCache()
        asyncio.run(_resolver(server, cache).resolve('assets/left.png'))
        asyncio.run(_resolver(server, cache).resolve('assets/left.png'))
        assert len(server.requests) == 1

    @pytest.mark.parametrize('path', ['assets/missing.png', 'assets/empty.png'])
    def test_failures_raise_resource_fetch_error(self, server, path):
        with pytest.raises(ResourceFetchError) as info:
            asyncio.run(_resolver(server).resolve(path))
        assert info.value.url.endswith(path)

    def test_transport_error_is_wrapped(self):
        def _boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError('connection refused', request=request)

        resolver = LogoResolver(LogoResolverConfig(base_url='http://assets.test/'), transport=httpx.MockTransport(_boom))
        with pytest.raises(ResourceFetchError):
            asyncio.run(resolver.resolve('logo.png'))


class TestResolveLogos:
    def test_no_urls_gives_empty_dictionary(self, server):
        assert asyncio.run(_resolver(server).resolve_logos(None, '')) == {}
        assert server.requests == []

    def test_single_url_is_mirrored(self, server):
        images = asyncio.run(_resolver(server).resolve_logos('assets/left.png', None))
        assert images[LEFT_LOGO] == images[RIGHT_LOGO]

    def test_surviving_logo_is_mirrored(self, server):
        images = asyncio.run(_resolver(server).resolve_logos('assets/left.png', 'assets/missing.png'))
        assert set(images) == {LEFT_LOGO, RIGHT_LOGO}
        assert images[RIGHT_LOGO] == images[LEFT_LOGO]

    def test_both_failing_gives_empty_dictionary(self, server):
        images = asyncio.run(_resolver(server).resolve_logos('assets/missing.png', 'assets/empty.png'))
        assert images == {}

    def test_both_logos_fetched(self, server):
        images = asyncio.run(_resolver(server).resolve_logos('assets/left.png', 'assets/right.png'))
        assert len(server.requests) == 2
        assert images[LEFT_LOGO].startswith('data:image/png;base64,')
        assert images[RIGHT_LOGO].startswith('data:image/png;base64,')

    def test_malformed_url_leaves_slot_empty(self, server):
        assert asyncio.run(_resolver(server).resolve_logos('http://[bad-host/logo.png', None)) == {}
        assert server.requests == []

    def test_malformed_url_mirrors_the_other_logo(self, server):
        images = asyncio.run(_resolver(server).resolve_logos('assets/left.png', 'http://[bad-host/right.png'))
        assert set(images) == {LEFT_LOGO, RIGHT_LOGO}
        assert images[RIGHT_LOGO] == images[LEFT_LOGO]

    def test_malformed_url_is_a_fetch_error(self, server):
        with pytest.raises(ResourceFetchError):
            asyncio.run(_resolver(server).resolve('http://[bad-host/logo.png'))

    def test_url_rejected_by_the_client_is_a_fetch_error(self, server):
        with pytest.raises(ResourceFetchError):
            asyncio.run(_resolver(server).resolve('http://assets.test:99999/app/assets/left.png'))
        assert server.requests == []
