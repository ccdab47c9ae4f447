from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from labreports.adapters.logo_resolver import LogoCache, LogoResolver, LogoResolverConfig
from labreports.adapters.pdf_renderer import PdfRenderer, ReportlabRenderer
from labreports.config import Settings, get_settings
from labreports.report.composer import HeaderInput, RowInput, coerce_header, compose, merge_documents
from labreports.report.descriptors import get_descriptor
from labreports.report.layout import DocumentDefinition
from labreports.types import BatchReport, ReportKind

logger = logging.getLogger(__name__)

ReportInput = BatchReport | Mapping[str, Any]


def _coerce_report(report: ReportInput) -> BatchReport:
    if isinstance(report, BatchReport):
        return report
    return BatchReport.model_validate(dict(report))


def _unique_name(name: str, used: set[str]) -> str:
    stem, dot, suffix = name.rpartition('.')
    if not dot:
        stem, suffix = name, ''
    candidate = name
    counter = 2
    while candidate in used:
        candidate = f'{stem}_{counter}.{suffix}' if suffix else f'{stem}_{counter}'
        counter += 1
    used.add(candidate)
    return candidate


class ReportExporter:
    def __init__(self, resolver: LogoResolver, renderer: PdfRenderer, *, settings: Settings | None = None):
        self.resolver = resolver
        self.renderer = renderer
        self.settings = settings or get_settings()

    async def build(
        self,
        kind: ReportKind | str,
        header: HeaderInput,
        rows: Iterable[RowInput] | None,
    ) -> DocumentDefinition:
        get_descriptor(kind)
        parsed = coerce_header(header)
        # logo failures are logged inside resolve_logos and leave the slot empty
        images = await self.resolver.resolve_logos(parsed.left_logo_url, parsed.right_logo_url)
        return compose(kind, parsed, rows, images, settings=self.settings)

    async def download(
        self,
        kind: ReportKind | str,
        header: HeaderInput,
        rows: Iterable[RowInput] | None,
        *,
        filename: str | None = None,
    ) -> Path:
        definition = await self.build(kind, header, rows)
        name = filename or get_descriptor(kind).filename(coerce_header(header))
        return await asyncio.to_thread(self.renderer.download, definition, name)

    async def open(self, kind: ReportKind | str, header: HeaderInput, rows: Iterable[RowInput] | None) -> None:
        definition = await self.build(kind, header, rows)
        await asyncio.to_thread(self.renderer.open, definition)

    async def print(self, kind: ReportKind | str, header: HeaderInput, rows: Iterable[RowInput] | None) -> None:
        definition = await self.build(kind, header, rows)
        await asyncio.to_thread(self.renderer.print, definition)

    async def merge_and_download(
        self,
        kind: ReportKind | str,
        reports: Sequence[ReportInput],
        *,
        filename: str | None = None,
    ) -> Path:
        batches = [_coerce_report(report) for report in reports]
        if not batches:
            raise ValueError('merge_and_download needs at least one report')
        definitions = await asyncio.gather(
            *(self.build(kind, batch.header, batch.rows) for batch in batches)
        )
        name = filename or get_descriptor(kind).filename(batches[0].header)
        merged = merge_documents(definitions, title=name.removesuffix('.pdf'))
        return await asyncio.to_thread(self.renderer.download, merged, name)

    async def generate_all_separate(self, kind: ReportKind | str, reports: Sequence[ReportInput]) -> list[Path]:
        """Write one file per report; a failing report is logged and skipped."""
        descriptor = get_descriptor(kind)
        written: list[Path] = []
        used_names: set[str] = set()
        for index, report in enumerate(reports):
            try:
                batch = _coerce_report(report)
                name = _unique_name(batch.file_name or descriptor.filename(batch.header), used_names)
                written.append(await self.download(kind, batch.header, batch.rows, filename=name))
            except Exception:
                logger.exception('Skipping %s report #%s', descriptor.kind.value, index + 1)
        return written


def build_exporter(
    settings: Settings | None = None,
    *,
    cache: LogoCache | None = None,
    renderer: PdfRenderer | None = None,
) -> ReportExporter:
    settings = settings or get_settings()
    resolver = LogoResolver(LogoResolverConfig.from_settings(settings), cache)
    return ReportExporter(resolver, renderer or ReportlabRenderer(settings), settings=settings)
