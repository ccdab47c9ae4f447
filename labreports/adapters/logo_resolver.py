from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlsplit

import httpx

from labreports.config import Settings
from labreports.errors import ResourceFetchError
from labreports.report.blocks import LEFT_LOGO, RIGHT_LOGO

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = 'data:image/'
DEFAULT_MIME_TYPE = 'image/png'


def is_data_url(value: str) -> bool:
    return value.strip().lower().startswith(DATA_URL_PREFIX)


def to_data_url(payload: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(payload).decode('ascii')
    return f'data:{mime_type};base64,{encoded}'


@dataclass
class LogoResolverConfig:
    base_url: str
    timeout_seconds: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> LogoResolverConfig:
        return cls(base_url=settings.asset_base_url, timeout_seconds=settings.logo_fetch_timeout_seconds)


@dataclass
class LogoCache:
    """Resolved absolute URL -> data URL. Share one instance to reuse fetches across builds."""

    entries: dict[str, str] = field(default_factory=dict)

    def get(self, url: str) -> str | None:
        return self.entries.get(url)

    def put(self, url: str, data_url: str) -> str:
        # first writer wins; a concurrent second fetch of the same logo carries the same bytes
        return self.entries.setdefault(url, data_url)

    def __contains__(self, url: object) -> bool:
        return url in self.entries

    def __len__(self) -> int:
        return len(self.entries)


class LogoResolver:
    def __init__(
        self,
        cfg: LogoResolverConfig,
        cache: LogoCache | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cfg = cfg
        self.cache = cache if cache is not None else LogoCache()
        self._transport = transport

    def absolute_url(self, url: str) -> str:
        candidate = url.strip()
        if urlsplit(candidate).scheme:
            return candidate
        base = self.cfg.base_url if self.cfg.base_url.endswith('/') else f'{self.cfg.base_url}/'
        return urljoin(base, candidate)

    async def resolve(self, url: str) -> str:
        if not url or not url.strip():
            raise ResourceFetchError(str(url), 'empty logo reference')
        if is_data_url(url):
            return url.strip()

        try:
            absolute = self.absolute_url(url)
        except ValueError as exc:
            raise ResourceFetchError(url.strip(), f'malformed URL: {exc}') from exc
        cached = self.cache.get(absolute)
        if cached is not None:
            return cached

        try:
            async with httpx.AsyncClient(timeout=self.cfg.timeout_seconds, transport=self._transport) as client:
                response = await client.get(absolute, follow_redirects=True)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ResourceFetchError(absolute, f'HTTP {exc.response.status_code}') from exc
        except httpx.HTTPError as exc:
            raise ResourceFetchError(absolute, f'{type(exc).__name__}: {exc}') from exc
        except httpx.InvalidURL as exc:
            raise ResourceFetchError(absolute, f'malformed URL: {exc}') from exc

        payload = response.content
        if not payload:
            raise ResourceFetchError(absolute, 'empty response body')

        data_url = to_data_url(payload, self._mime_type(response, absolute))
        return self.cache.put(absolute, data_url)

    @staticmethod
    def _mime_type(response: httpx.Response, url: str) -> str:
        content_type = response.headers.get('content-type', '').split(';', 1)[0].strip().lower()
        if content_type.startswith('image/'):
            return content_type
        guessed, _ = mimetypes.guess_type(urlsplit(url).path)
        if guessed and guessed.startswith('image/'):
            return guessed
        return DEFAULT_MIME_TYPE

    async def _resolve_slot(self, url: str | None) -> str | None:
        if not url or not url.strip():
            return None
        try:
            return await self.resolve(url)
        except ResourceFetchError as exc:
            logger.warning('Logo slot left empty: %s', exc)
            return None

    async def resolve_logos(self, left_url: str | None = None, right_url: str | None = None) -> dict[str, str]:
        """Build the image dictionary for one document.

        Both fetches run concurrently and are awaited together. A single
        resolved logo is mirrored into the other slot so the header stays
        symmetric; when nothing resolves the dictionary is empty.
        """
        left_url = left_url.strip() if left_url else None
        right_url = right_url.strip() if right_url else None
        if left_url and right_url and left_url == right_url:
            right_url = None

        left, right = await asyncio.gather(self._resolve_slot(left_url), self._resolve_slot(right_url))
        if left is None and right is None:
            return {}
        return {LEFT_LOGO: left or right, RIGHT_LOGO: right or left}
