from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from labreports.config import Settings, get_settings
from labreports.errors import CompositionError
from labreports.report.blocks import (
    Branding,
    TableColumn,
    data_table,
    header_bar,
    page_footer,
    report_title,
    rule,
    running_title,
    signature_block,
)
from labreports.report.certificates import RecordContext
from labreports.report.classifier import summarize
from labreports.report.descriptors import ReportDescriptor, get_descriptor
from labreports.report.layout import (
    DocumentDefinition,
    DocumentInfo,
    LayoutNode,
    PageBreakNode,
    TextStyle,
    text,
)
from labreports.types import PaginationStrategy, ReportHeader, ReportKind, ReportRow

logger = logging.getLogger(__name__)

HeaderInput = ReportHeader | Mapping[str, Any]
RowInput = ReportRow | Mapping[str, Any]

NAMED_STYLES: dict[str, TextStyle] = {
    'title': TextStyle(font_size=14, bold=True, alignment='center'),
    'sectionTitle': TextStyle(font_size=11, bold=True, color='#0b2237'),
    'th': TextStyle(bold=True),
    'kv': TextStyle(bold=True),
    'small': TextStyle(font_size=8, color='#5d6b7a'),
}


def coerce_header(header: HeaderInput) -> ReportHeader:
    if isinstance(header, ReportHeader):
        return header
    try:
        return ReportHeader.model_validate(dict(header))
    except (TypeError, ValueError) as exc:
        raise CompositionError(f'Unusable report header: {exc}') from exc


def coerce_rows(rows: Iterable[RowInput] | None) -> list[ReportRow]:
    try:
        return [row if isinstance(row, ReportRow) else ReportRow.model_validate(dict(row)) for row in rows or ()]
    except (TypeError, ValueError) as exc:
        raise CompositionError(f'Unusable report rows: {exc}') from exc


def branding_for(header: ReportHeader, settings: Settings) -> Branding:
    lab = header.lab
    return Branding(
        org_name=header.org_name or settings.org_name,
        lab_name=lab.name or settings.default_lab_name,
        address=lab.address or settings.default_lab_address,
        email=lab.email or settings.default_lab_email,
        phone=lab.phone or settings.default_lab_phone,
        footer_tag=settings.org_footer_tag,
    )


def summary_line(rows: Sequence[ReportRow]) -> str:
    summary = summarize(rows)
    return f'TOTAL: {summary.total} • OK: {summary.positive} • DEF: {summary.negative}'


def _tabular_content(
    descriptor: ReportDescriptor,
    header: ReportHeader,
    rows: Sequence[ReportRow],
    branding: Branding,
    images: Mapping[str, str],
) -> list[LayoutNode]:
    columns = descriptor.columns_for(header)
    title = header.title if descriptor.kind is ReportKind.inward_receipt and header.title else descriptor.title
    content: list[LayoutNode] = [
        header_bar(branding, images),
        rule(color='#c7c7c7'),
        report_title(title.upper()),
    ]
    if descriptor.meta is not None:
        content.extend(descriptor.meta(header))
    content.append(
        data_table(
            [TableColumn(column.title, column.width, column.alignment) for column in columns],
            [[column.value(index, row) for column in columns] for index, row in enumerate(rows)],
        )
    )
    if descriptor.show_summary:
        content.append(text(summary_line(rows), bold=True, margin=(0, 6, 0, 0)))
    if descriptor.trailer is not None:
        content.extend(descriptor.trailer(header, rows))
    if descriptor.signatures is not None:
        content.append(signature_block(descriptor.signatures(header)))
    return content


def _per_record_content(
    descriptor: ReportDescriptor,
    header: ReportHeader,
    rows: Sequence[ReportRow],
    branding: Branding,
    images: Mapping[str, str],
) -> list[LayoutNode]:
    if descriptor.record_page is None:
        raise CompositionError(f'{descriptor.kind.value} has no record page builder')
    ctx = RecordContext(header=header, branding=branding, images=images)
    if descriptor.keep_row is not None:
        rows = [row for row in rows if descriptor.keep_row(row)]
    # an empty batch still prints one page of placeholders
    records = list(rows) or [ReportRow()]

    pages: list[list[LayoutNode]] = []
    if descriptor.cover is not None and len(rows) > 1:
        pages.append(descriptor.cover(rows, ctx))
    pages.extend(descriptor.record_page(row, ctx, rows) for row in records)

    content: list[LayoutNode] = []
    for index, page in enumerate(pages):
        if index:
            content.append(PageBreakNode())
        content.extend(page)
    return content


def compose(
    kind: ReportKind | str,
    header: HeaderInput,
    rows: Iterable[RowInput] | None,
    images: Mapping[str, str] | None = None,
    *,
    settings: Settings | None = None,
) -> DocumentDefinition:
    descriptor = get_descriptor(kind)
    settings = settings or get_settings()
    # callbacks close over these copies, never the caller's objects
    snapshot = coerce_header(header).model_copy(deep=True)
    records = coerce_rows(rows)
    image_dict = dict(images or {})
    branding = branding_for(snapshot, settings)

    if descriptor.strategy is PaginationStrategy.tabular:
        content = _tabular_content(descriptor, snapshot, records, branding, image_dict)
        header_callback = running_title(f'{descriptor.title} • {snapshot.primary_date or "-"}')
    else:
        content = _per_record_content(descriptor, snapshot, records, branding, image_dict)
        header_callback = None

    logger.debug('Composed %s with %s rows (%s)', descriptor.kind.value, len(records), descriptor.strategy.value)
    return DocumentDefinition(
        info=DocumentInfo(
            title=descriptor.filename(snapshot).removesuffix('.pdf'),
            author=branding.lab_name or settings.app_name,
            subject=descriptor.title,
        ),
        content=tuple(content),
        images=image_dict,
        default_style=TextStyle(font_size=settings.pdf_body_font_size, color='#111111'),
        styles=NAMED_STYLES,
        header=header_callback,
        footer=page_footer(branding.footer_tag, hide_single_page=descriptor.hide_single_page_number),
    )


def default_filename(kind: ReportKind | str, header: HeaderInput) -> str:
    return get_descriptor(kind).filename(coerce_header(header))


def merge_documents(documents: Sequence[DocumentDefinition], *, title: str | None = None) -> DocumentDefinition:
    if not documents:
        raise ValueError('merge_documents needs at least one document')
    first = documents[0]
    content: list[LayoutNode] = []
    images: dict[str, str] = {}
    for index, document in enumerate(documents):
        if index:
            content.append(PageBreakNode())
        content.extend(document.content)
        # later documents win on image key clashes
        images.update(document.images)

    return DocumentDefinition(
        info=DocumentInfo(
            title=title or first.info.title,
            author=first.info.author,
            subject=first.info.subject,
        ),
        content=tuple(content),
        images=images,
        page_size=first.page_size,
        page_margins=first.page_margins,
        default_style=first.default_style,
        styles=first.styles,
        header=first.header,
        footer=first.footer,
    )
