from __future__ import annotations

import base64
import io
import logging
import re
import shlex
import subprocess
import tempfile
import webbrowser
from pathlib import Path
from typing import Protocol
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT, TA_RIGHT
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import (
    Flowable,
    HRFlowable,
    Image,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from labreports.config import Settings, get_settings
from labreports.errors import RenderOrExportError
from labreports.report.layout import (
    CanvasLineNode,
    ColumnsNode,
    DocumentDefinition,
    ImageNode,
    LayoutNode,
    PageBreakNode,
    PageCallback,
    SpacerNode,
    StackNode,
    TableNode,
    TextNode,
    TextStyle,
    Width,
)

logger = logging.getLogger(__name__)

_ALIGNMENTS = {
    'left': TA_LEFT,
    'center': TA_CENTER,
    'right': TA_RIGHT,
    'justify': TA_JUSTIFY,
}


class PdfRenderer(Protocol):
    def render(self, definition: DocumentDefinition) -> bytes: ...

    def download(self, definition: DocumentDefinition, filename: str) -> Path: ...

    def open(self, definition: DocumentDefinition) -> Path: ...

    def print(self, definition: DocumentDefinition) -> Path: ...


def resolve_widths(widths: tuple[Width, ...], available: float) -> list[float]:
    fixed = sum(float(width) for width in widths if not isinstance(width, str))
    flexible = sum(1 for width in widths if isinstance(width, str))
    share = max(available - fixed, 0.0) / flexible if flexible else 0.0
    return [share if isinstance(width, str) else float(width) for width in widths]


def _register_ttf_font(font_name: str, font_path: Path) -> bool:
    if font_name in pdfmetrics.getRegisteredFontNames():
        return True
    try:
        pdfmetrics.registerFont(TTFont(font_name, str(font_path)))
        return True
    except Exception as exc:
        logger.warning('Failed to register PDF font %s from %s: %s', font_name, font_path, exc)
        return False


def _safe_stem(value: str) -> str:
    return re.sub(r'[^0-9A-Za-z_-]+', '-', value or '').strip('-') or 'report'


def _decode_data_url(data_url: str) -> bytes:
    _, _, encoded = data_url.partition('base64,')
    return base64.b64decode(encoded, validate=False)


class _StoryBuilder:
    def __init__(self, definition: DocumentDefinition, settings: Settings):
        self.definition = definition
        self.settings = settings
        self._style_count = 0
        self._image_bytes: dict[str, bytes | None] = {}

    # -- text -------------------------------------------------------------------

    def _font_for(self, style: TextStyle) -> str:
        if style.bold:
            return self.settings.pdf_bold_font_name
        if style.italics:
            return self.settings.pdf_italic_font_name
        return self.settings.pdf_font_name

    def paragraph_style(self, node: TextNode) -> ParagraphStyle:
        style = self.definition.default_style
        if node.style_name:
            style = style.merged(self.definition.styles.get(node.style_name))
        style = style.merged(node.style)
        font_size = style.font_size or self.settings.pdf_body_font_size
        left, top, right, bottom = node.margin
        self._style_count += 1
        return ParagraphStyle(
            f'LR{self._style_count}',
            fontName=self._font_for(style),
            fontSize=font_size,
            leading=style.leading or font_size * 1.25,
            textColor=colors.HexColor(style.color or '#111111'),
            alignment=_ALIGNMENTS.get(style.alignment or 'left', TA_LEFT),
            leftIndent=left,
            rightIndent=right,
            spaceBefore=top,
            spaceAfter=bottom,
        )

    def _paragraph(self, node: TextNode) -> Paragraph:
        markup = escape(node.text).replace('\n', '<br/>')
        return Paragraph(markup, self.paragraph_style(node))

    # -- images -----------------------------------------------------------------

    def _image(self, node: ImageNode) -> Flowable:
        if node.key not in self._image_bytes:
            payload = self.definition.images.get(node.key)
            decoded: bytes | None = None
            if payload:
                try:
                    decoded = _decode_data_url(payload)
                except ValueError as exc:
                    logger.warning('Image %s is not valid base64: %s', node.key, exc)
            self._image_bytes[node.key] = decoded
        data = self._image_bytes[node.key]
        if data is None:
            return Spacer(node.width, node.height)
        try:
            # ImageReader parses eagerly; Image alone would defer a bad payload until drawing
            ImageReader(io.BytesIO(data)).getSize()
            image = Image(io.BytesIO(data), width=node.width, height=node.height)
        except Exception as exc:
            logger.warning('Failed to render image %s: %s', node.key, exc)
            return Spacer(node.width, node.height)
        image.hAlign = node.alignment.upper()
        return image

    # -- containers -------------------------------------------------------------

    def _columns(self, node: ColumnsNode, available: float) -> list[Flowable]:
        gap = node.gap
        inner = available - gap * max(len(node.columns) - 1, 0)
        widths = resolve_widths(tuple(column.width for column in node.columns), inner)
        row = [self.cell_flowables(column.node, width) for column, width in zip(node.columns, widths)]
        col_widths = [width + (gap if index < len(widths) - 1 else 0) for index, width in enumerate(widths)]
        table = Table([row], colWidths=col_widths)
        table.setStyle(
            TableStyle(
                [
                    ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
                    ('LEFTPADDING', (0, 0), (-1, -1), 0),
                    ('TOPPADDING', (0, 0), (-1, -1), 0),
                    ('BOTTOMPADDING', (0, 0), (-1, -1), 0),
                    ('RIGHTPADDING', (0, 0), (-1, -1), 0),
                    ('RIGHTPADDING', (0, 0), (-2, -1), gap),
                ]
            )
        )
        return self._with_margin([table], node.margin)

    def _table(self, node: TableNode, available: float) -> list[Flowable]:
        total_width = node.width or available
        widths = resolve_widths(node.widths, total_width)
        pad_left, pad_top, pad_right, pad_bottom = node.padding
        commands: list[tuple] = [
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), pad_left),
            ('TOPPADDING', (0, 0), (-1, -1), pad_top),
            ('RIGHTPADDING', (0, 0), (-1, -1), pad_right),
            ('BOTTOMPADDING', (0, 0), (-1, -1), pad_bottom),
        ]
        if node.grid_color:
            commands.append(('GRID', (0, 0), (-1, -1), node.grid_width, colors.HexColor(node.grid_color)))

        data = []
        for row_index, row in enumerate(node.body):
            cells = []
            col_index = 0
            for cell in row:
                span = max(cell.col_span, 1)
                cell_width = sum(widths[col_index:col_index + span]) - pad_left - pad_right
                cells.append(self.cell_flowables(cell.content, max(cell_width, 1.0)))
                if cell.fill:
                    commands.append(('BACKGROUND', (col_index, row_index), (col_index, row_index), colors.HexColor(cell.fill)))
                if span > 1:
                    commands.append(('SPAN', (col_index, row_index), (col_index + span - 1, row_index)))
                col_index += 1
            data.append(cells)

        table = Table(data, colWidths=widths, repeatRows=node.header_rows, hAlign='LEFT')
        table.setStyle(TableStyle(commands))
        return self._with_margin([table], node.margin)

    @staticmethod
    def _with_margin(flowables: list[Flowable], margin: tuple[float, float, float, float]) -> list[Flowable]:
        _, top, _, bottom = margin
        if top:
            flowables.insert(0, Spacer(1, top))
        if bottom:
            flowables.append(Spacer(1, bottom))
        return flowables

    def flowables(self, node: LayoutNode, available: float) -> list[Flowable]:
        if isinstance(node, TextNode):
            return [self._paragraph(node)]
        if isinstance(node, ImageNode):
            return [self._image(node)]
        if isinstance(node, CanvasLineNode):
            _, top, _, bottom = node.margin
            return [
                HRFlowable(
                    width=node.length if node.length is not None else '100%',
                    thickness=node.line_width,
                    color=colors.HexColor(node.color),
                    spaceBefore=top,
                    spaceAfter=bottom,
                    hAlign='LEFT',
                )
            ]
        if isinstance(node, SpacerNode):
            return [Spacer(1, node.height)]
        if isinstance(node, PageBreakNode):
            return [PageBreak()]
        if isinstance(node, StackNode):
            items: list[Flowable] = []
            for item in node.items:
                items.extend(self.flowables(item, available))
            return self._with_margin(items, node.margin)
        if isinstance(node, ColumnsNode):
            return self._columns(node, available)
        if isinstance(node, TableNode):
            return self._table(node, available)
        raise TypeError(f'unsupported layout node: {type(node).__name__}')

    def cell_flowables(self, node: LayoutNode, available: float) -> list[Flowable] | str:
        return self.flowables(node, available) or ''

    def story(self) -> list[Flowable]:
        width = self.definition.content_width
        story: list[Flowable] = []
        for node in self.definition.content:
            story.extend(self.flowables(node, width))
        return story

    def draw_callback_node(
        self,
        canvas,
        callback: PageCallback | None,
        current_page: int,
        total_pages: int,
        *,
        top: bool,
    ) -> None:
        if callback is None:
            return
        node = callback(current_page, total_pages)
        if node is None:
            return
        _, page_height = self.definition.page_dimensions
        left, top_margin, _, bottom_margin = self.definition.page_margins
        width = self.definition.content_width
        for flowable in self.flowables(node, width):
            _, height = flowable.wrapOn(canvas, width, page_height)
            if top:
                y = page_height - top_margin + max((top_margin - height) / 2, 2)
            else:
                y = max((bottom_margin - height) / 2, 2)
            flowable.drawOn(canvas, left, y)


class ReportlabRenderer:
    def __init__(self, settings: Settings | None = None, *, output_dir: Path | None = None):
        self.settings = settings or get_settings()
        self.output_dir = output_dir or self.settings.output_dir
        if self.settings.pdf_font_path:
            _register_ttf_font(self.settings.pdf_font_name, self.settings.pdf_font_path)
        if self.settings.pdf_bold_font_path:
            _register_ttf_font(self.settings.pdf_bold_font_name, self.settings.pdf_bold_font_path)

    def _build(self, definition: DocumentDefinition, *, total_pages: int | None) -> tuple[bytes, int]:
        builder = _StoryBuilder(definition, self.settings)
        left, top, right, bottom = definition.page_margins
        buffer = io.BytesIO()
        document = SimpleDocTemplate(
            buffer,
            pagesize=definition.page_dimensions,
            leftMargin=left,
            rightMargin=right,
            topMargin=top,
            bottomMargin=bottom,
            title=definition.info.title,
            author=definition.info.author,
            subject=definition.info.subject,
        )
        pages_seen = 0

        def _on_page(canvas, doc):
            nonlocal pages_seen
            canvas.setProducer(self.settings.pdf_producer)
            current = canvas.getPageNumber()
            pages_seen = max(pages_seen, current)
            # the counting pass runs without header/footer so generators only ever see real totals
            if total_pages is None:
                return
            builder.draw_callback_node(canvas, definition.header, current, total_pages, top=True)
            builder.draw_callback_node(canvas, definition.footer, current, total_pages, top=False)

        document.build(builder.story(), onFirstPage=_on_page, onLaterPages=_on_page)
        return buffer.getvalue(), pages_seen

    def render(self, definition: DocumentDefinition) -> bytes:
        try:
            _, total_pages = self._build(definition, total_pages=None)
            pdf_bytes, _ = self._build(definition, total_pages=total_pages)
        except RenderOrExportError:
            raise
        except Exception as exc:
            raise RenderOrExportError(f'Failed to render {definition.info.title!r}: {exc}') from exc
        return pdf_bytes

    def _write(self, definition: DocumentDefinition, path: Path) -> Path:
        pdf_bytes = self.render(definition)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(pdf_bytes)
        except OSError as exc:
            raise RenderOrExportError(f'Failed to write {path}: {exc}') from exc
        return path

    def download(self, definition: DocumentDefinition, filename: str) -> Path:
        target = Path(filename)
        if not target.is_absolute():
            target = self.output_dir / target
        path = self._write(definition, target)
        logger.info('Wrote %s', path)
        return path

    def _temp_path(self, definition: DocumentDefinition) -> Path:
        handle = tempfile.NamedTemporaryFile(prefix=f'{_safe_stem(definition.info.title)}_', suffix='.pdf', delete=False)
        handle.close()
        return self._write(definition, Path(handle.name))

    def open(self, definition: DocumentDefinition) -> Path:
        path = self._temp_path(definition)
        webbrowser.open(path.as_uri())
        return path

    def print(self, definition: DocumentDefinition) -> Path:
        path = self._temp_path(definition)
        command = [*shlex.split(self.settings.print_command), str(path)]
        try:
            subprocess.Popen(command)
        except OSError as exc:
            raise RenderOrExportError(f'Failed to launch print command {command[0]!r}: {exc}') from exc
        return path
