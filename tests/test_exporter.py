from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from labreports.adapters.logo_resolver import LogoCache, LogoResolver, LogoResolverConfig
from labreports.errors import RenderOrExportError
from labreports.exporter import ReportExporter, build_exporter
from labreports.report.blocks import LEFT_LOGO, RIGHT_LOGO
from labreports.report.layout import DocumentDefinition, PageBreakNode
from labreports.types import ReportKind


class _FakeRenderer:
    def __init__(self, fail_on: set[str] | None = None):
        self.fail_on = fail_on or set()
        self.downloads: list[tuple[DocumentDefinition, str]] = []
        self.opened: list[DocumentDefinition] = []
        self.printed: list[DocumentDefinition] = []

    def render(self, definition: DocumentDefinition) -> bytes:
        return b'%PDF-fake'

    def download(self, definition: DocumentDefinition, filename: str) -> Path:
        if filename in self.fail_on:
            raise RenderOrExportError(f'cannot write {filename}')
        self.downloads.append((definition, filename))
        return Path(filename)

    def open(self, definition: DocumentDefinition) -> Path:
        self.opened.append(definition)
        return Path('opened.pdf')

    def print(self, definition: DocumentDefinition) -> Path:
        self.printed.append(definition)
        return Path('printed.pdf')


def _exporter(settings, renderer, handler) -> ReportExporter:
    resolver = LogoResolver(
        LogoResolverConfig(base_url='http://assets.test/'),
        LogoCache(),
        transport=httpx.MockTransport(handler),
    )
    return ReportExporter(resolver, renderer, settings=settings)


def _serve_png(png_bytes):
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith('.png'):
            return httpx.Response(200, content=png_bytes, headers={'content-type': 'image/png'})
        return httpx.Response(500)

    return _handler


class TestDownload:
    def test_download_uses_default_filename_and_images(self, settings, header_payload, meter_rows, png_bytes):
        renderer = _FakeRenderer()
        exporter = _exporter(settings, renderer, _serve_png(png_bytes))
        header = {**header_payload, 'leftLogoUrl': '/assets/left.png'}

        path = asyncio.run(exporter.download(ReportKind.stop_defective, header, meter_rows))

        definition, filename = renderer.downloads[0]
        assert path == Path('STOP_DEFECTIVE_2025-01-15.pdf')
        assert filename == 'STOP_DEFECTIVE_2025-01-15.pdf'
        assert definition.images[LEFT_LOGO] == definition.images[RIGHT_LOGO]

    def test_explicit_filename_wins(self, settings, header_payload, png_bytes):
        renderer = _FakeRenderer()
        exporter = _exporter(settings, renderer, _serve_png(png_bytes))
        asyncio.run(exporter.download(ReportKind.new_meter, header_payload, [], filename='custom.pdf'))
        assert renderer.downloads[0][1] == 'custom.pdf'

    def test_logo_failure_does_not_abort(self, settings, header_payload, png_bytes):
        renderer = _FakeRenderer()
        exporter = _exporter(settings, renderer, _serve_png(png_bytes))
        header = {**header_payload, 'leftLogoUrl': '/assets/left.gif', 'rightLogoUrl': '/assets/right.gif'}

        asyncio.run(exporter.download(ReportKind.contested, header, [{'serial': 'C-1'}]))

        definition, _ = renderer.downloads[0]
        assert dict(definition.images) == {}

    def test_render_failure_propagates(self, settings, header_payload, png_bytes):
        renderer = _FakeRenderer(fail_on={'boom.pdf'})
        exporter = _exporter(settings, renderer, _serve_png(png_bytes))
        with pytest.raises(RenderOrExportError):
            asyncio.run(exporter.download(ReportKind.pq_meter, header_payload, [], filename='boom.pdf'))

    def test_open_and_print(self, settings, header_payload, png_bytes):
        renderer = _FakeRenderer()
        exporter = _exporter(settings, renderer, _serve_png(png_bytes))
        asyncio.run(exporter.open(ReportKind.pq_meter, header_payload, []))
        asyncio.run(exporter.print(ReportKind.pq_meter, header_payload, []))
        assert len(renderer.opened) == 1
        assert len(renderer.printed) == 1


class TestBatches:
    def test_merge_and_download(self, settings, header_payload, png_bytes):
        renderer = _FakeRenderer()
        exporter = _exporter(settings, renderer, _serve_png(png_bytes))
        reports = [
            {'header': {**header_payload, 'leftLogoUrl': '/assets/a.png'}, 'rows': [{'serial': 'S-1'}]},
            {'header': header_payload, 'rows': [{'serial': 'S-2'}]},
        ]

        asyncio.run(exporter.merge_and_download(ReportKind.solar_net_meter, reports, filename='merged.pdf'))

        merged, filename = renderer.downloads[0]
        assert filename == 'merged.pdf'
        assert sum(isinstance(node, PageBreakNode) for node in merged.content) == 1
        assert set(merged.images) == {LEFT_LOGO, RIGHT_LOGO}
        assert merged.info.title == 'merged'

    def test_generate_all_separate_skips_failures(self, settings, header_payload, png_bytes, caplog):
        renderer = _FakeRenderer(fail_on={'second.pdf'})
        exporter = _exporter(settings, renderer, _serve_png(png_bytes))
        reports = [
            {'header': header_payload, 'rows': [{'serial': 'A'}], 'file_name': 'first.pdf'},
            {'header': header_payload, 'rows': [{'serial': 'B'}], 'file_name': 'second.pdf'},
            {'header': header_payload, 'rows': [{'serial': 'C'}]},
            {'header': header_payload, 'rows': [{'serial': 'D'}]},
        ]

        with caplog.at_level('ERROR'):
            paths = asyncio.run(exporter.generate_all_separate(ReportKind.solar_generation_meter, reports))

        assert paths == [
            Path('first.pdf'),
            Path('SOLAR_GENERATION_METER_2025-01-15.pdf'),
            Path('SOLAR_GENERATION_METER_2025-01-15_2.pdf'),
        ]
        assert 'report #2' in caplog.text


def test_build_exporter_wires_settings(settings):
    renderer = _FakeRenderer()
    cache = LogoCache()
    exporter = build_exporter(settings, cache=cache, renderer=renderer)
    assert exporter.renderer is renderer
    assert exporter.resolver.cache is cache
    assert exporter.resolver.cfg.base_url == 'http://assets.test/app/'
