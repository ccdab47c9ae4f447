from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from labreports.report.formatting import PLACEHOLDER, or_placeholder, present
from labreports.report.layout import (
    CanvasLineNode,
    Column,
    ColumnsNode,
    ImageNode,
    LayoutNode,
    PageCallback,
    StackNode,
    TableCell,
    TableNode,
    TextNode,
    Width,
    text,
)

GRID_COLOR = '#e6e9ef'
LABEL_FILL = '#f8f9fc'
SOFT_HEADER_FILL = '#eef7ff'
ROW_SHADE = '#fafafa'
SUBTLE_TEXT = '#5d6b7a'
TITLE_TEXT = '#0b2237'

BADGE_SUCCESS = '#198754'
BADGE_FAILURE = '#dc3545'
BADGE_NEUTRAL = '#6c757d'
BADGE_FALLBACK_TEXT = 'NA'
POSITIVE_TOKENS = frozenset({'OK', 'PASS', 'PASSED'})
NEGATIVE_TOKENS = frozenset({'FAIL', 'FAILED'})

LEFT_LOGO = 'leftLogo'
RIGHT_LOGO = 'rightLogo'
SIGNATURE_LINE = '____________________________'


@dataclass(frozen=True)
class Branding:
    org_name: str
    lab_name: str | None = None
    address: str | None = None
    email: str | None = None
    phone: str | None = None
    footer_tag: str = ''


@dataclass(frozen=True)
class TableColumn:
    title: str
    width: Width = '*'
    alignment: str = 'left'


@dataclass(frozen=True)
class SignatureRole:
    label: str
    designation: str
    name: str | None = None


def _logo_slot(images: Mapping[str, str], key: str, size: float) -> Column:
    if key in images:
        return Column(ImageNode(key=key, width=size, height=size), width=size)
    # keeps the centre stack centred when no logo is available
    return Column(TextNode(''), width=size)


def header_bar(branding: Branding, images: Mapping[str, str], *, logo_size: float = 36) -> ColumnsNode:
    lines: list[LayoutNode] = [
        text(branding.org_name, bold=True, font_size=12, alignment='center'),
    ]
    if present(branding.lab_name):
        lines.append(
            text(str(branding.lab_name).upper(), font_size=11, color='#333333', alignment='center', margin=(0, 2, 0, 0))
        )
    if present(branding.address):
        lines.append(text(branding.address, font_size=9, color='#555555', alignment='center', margin=(0, 2, 0, 0)))
    contact = [
        part
        for part in (
            f'Email: {branding.email}' if present(branding.email) else '',
            f'Phone: {branding.phone}' if present(branding.phone) else '',
        )
        if part
    ]
    if contact:
        lines.append(text(' • '.join(contact), font_size=9, color='#555555', alignment='center', margin=(0, 2, 0, 0)))

    return ColumnsNode(
        columns=(
            _logo_slot(images, LEFT_LOGO, logo_size),
            Column(StackNode(tuple(lines)), width='*'),
            _logo_slot(images, RIGHT_LOGO, logo_size),
        ),
        gap=8,
        margin=(0, 0, 0, 2),
    )


def rule(length: float | None = None, *, color: str = '#000000', line_width: float = 1.0) -> CanvasLineNode:
    return CanvasLineNode(length=length, line_width=line_width, color=color, margin=(0, 6, 0, 6))


def report_title(title: str, *, font_size: float = 14) -> TextNode:
    return text(title, bold=True, font_size=font_size, alignment='center', margin=(0, 0, 0, 8))


def section_title(title: str) -> TextNode:
    return text(title, bold=True, font_size=11, color=TITLE_TEXT, margin=(0, 10, 0, 4))


def label_cell(label: str, *, fill: str = LABEL_FILL) -> TableCell:
    return TableCell(text(label, bold=True), fill=fill)


def value_cell(value: Any, **style: Any) -> TableCell:
    return TableCell(text(or_placeholder(value), **style))


def spanned(cell: TableCell, span: int) -> tuple[TableCell, ...]:
    first = TableCell(cell.content, fill=cell.fill, col_span=span)
    return (first,) + tuple(TableCell(TextNode('')) for _ in range(span - 1))


def row4(label1: str, value1: Any, label2: str, value2: Any) -> tuple[TableCell, ...]:
    return (label_cell(label1), value_cell(value1), label_cell(label2), value_cell(value2))


def row2(label: str, value: Any) -> tuple[TableCell, ...]:
    return (label_cell(label),) + spanned(value_cell(value), 3)


def banner_row(title: str, *, fill: str = LABEL_FILL, columns: int = 4) -> tuple[TableCell, ...]:
    return spanned(TableCell(text(title, bold=True, alignment='center'), fill=fill), columns)


def kv_table(
    rows: Sequence[tuple[TableCell, ...]],
    *,
    widths: tuple[Width, ...] = ('auto', '*', 'auto', '*'),
    margin: tuple[float, float, float, float] = (0, 2, 0, 0),
) -> TableNode:
    return TableNode(body=tuple(rows), widths=widths, grid_color=GRID_COLOR, margin=margin)


def meta_grid(pairs: Sequence[tuple[str, Any]]) -> TableNode:
    body: list[tuple[TableCell, ...]] = []
    for index in range(0, len(pairs), 2):
        label1, value1 = pairs[index]
        if index + 1 < len(pairs):
            label2, value2 = pairs[index + 1]
            body.append(row4(label1, value1, label2, value2))
        else:
            body.append(row2(label1, value1))
    return TableNode(
        body=tuple(body),
        widths=('auto', '*', 'auto', '*'),
        grid_color=GRID_COLOR,
        grid_width=0.4,
        margin=(0, 0, 0, 8),
    )


def data_table(columns: Sequence[TableColumn], rows: Sequence[Sequence[str]]) -> TableNode:
    header = tuple(
        TableCell(text(column.title, bold=True, alignment=column.alignment), fill=LABEL_FILL)
        for column in columns
    )
    body: list[tuple[TableCell, ...]] = [header]
    for values in rows:
        # table row index 1 is the first data row; odd indexes are shaded
        fill = ROW_SHADE if len(body) % 2 == 1 else None
        body.append(
            tuple(
                TableCell(text(value if value != '' else PLACEHOLDER, alignment=column.alignment), fill=fill)
                for column, value in zip(columns, values)
            )
        )
    if not rows:
        body.append(
            spanned(TableCell(text('No records', italics=True, color=SUBTLE_TEXT, alignment='center')), len(columns))
        )
    return TableNode(
        body=tuple(body),
        widths=tuple(column.width for column in columns),
        header_rows=1,
        grid_color=GRID_COLOR,
    )


def badge_tone(value: str | None) -> str:
    token = str(value or '').strip().upper()
    if token in POSITIVE_TOKENS:
        return 'success'
    if token in NEGATIVE_TOKENS:
        return 'failure'
    return 'neutral'


def status_badge(value: str | None, *, width: float = 40) -> TableNode:
    tone = badge_tone(value)
    token = str(value or '').strip().upper()
    color = {'success': BADGE_SUCCESS, 'failure': BADGE_FAILURE}.get(tone, BADGE_NEUTRAL)
    label = token if tone != 'neutral' else BADGE_FALLBACK_TEXT
    return TableNode(
        body=((TableCell(text(label, bold=True, color='#ffffff', alignment='center'), fill=color),),),
        widths=(width,),
        grid_color=None,
        padding=(2, 0.5, 2, 0.5),
        width=width,
    )


def signature_block(roles: Sequence[SignatureRole]) -> ColumnsNode:
    if not 2 <= len(roles) <= 4:
        raise ValueError(f'signature block takes 2 to 4 roles, got {len(roles)}')
    columns = []
    for role in roles:
        columns.append(
            Column(
                StackNode(
                    (
                        text(role.label, bold=True, alignment='center', margin=(0, 18, 0, 0)),
                        text(SIGNATURE_LINE, alignment='center', margin=(0, 14, 0, 0)),
                        text(or_placeholder(role.name).upper(), font_size=8.5, color=SUBTLE_TEXT, alignment='center'),
                        text(role.designation, font_size=8.5, color=SUBTLE_TEXT, alignment='center'),
                    )
                ),
                width='*',
            )
        )
    return ColumnsNode(columns=tuple(columns), margin=(0, 12, 0, 0))


def page_footer(org_tag: str, *, hide_single_page: bool = False) -> PageCallback:
    def _footer(current_page: int, total_pages: int) -> LayoutNode:
        page_label = f'Page {current_page} of {total_pages}'
        if hide_single_page and total_pages == 1:
            page_label = ''
        return ColumnsNode(
            columns=(
                Column(text(page_label, font_size=8, color=SUBTLE_TEXT, alignment='left')),
                Column(text(org_tag, font_size=8, color=SUBTLE_TEXT, alignment='right')),
            )
        )

    return _footer


def running_title(title: str) -> PageCallback:
    # the first page carries the full header bar in its content
    def _header(current_page: int, total_pages: int) -> LayoutNode | None:
        if current_page <= 1:
            return None
        return text(f'{title} (contd.)', font_size=8, color=SUBTLE_TEXT, alignment='right')

    return _header
