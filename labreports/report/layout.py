from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Mapping, Union

Margins = tuple[float, float, float, float]  # left, top, right, bottom
Width = Union[float, str]  # points, '*' (share of the remaining space) or 'auto'

PAGE_SIZES: dict[str, tuple[float, float]] = {
    'A4': (595.2755905511812, 841.8897637795277),
    'LETTER': (612.0, 792.0),
}


@dataclass(frozen=True)
class TextStyle:
    font_size: float | None = None
    bold: bool | None = None
    italics: bool | None = None
    color: str | None = None
    alignment: str | None = None
    leading: float | None = None

    def merged(self, other: TextStyle | None) -> TextStyle:
        if other is None:
            return self
        updates = {
            name: getattr(other, name)
            for name in ('font_size', 'bold', 'italics', 'color', 'alignment', 'leading')
            if getattr(other, name) is not None
        }
        return replace(self, **updates)


@dataclass(frozen=True)
class TextNode:
    text: str
    style: TextStyle = field(default_factory=TextStyle)
    style_name: str | None = None
    margin: Margins = (0, 0, 0, 0)


@dataclass(frozen=True)
class ImageNode:
    key: str
    width: float
    height: float
    alignment: str = 'center'


@dataclass(frozen=True)
class CanvasLineNode:
    length: float | None = None  # None spans the available width
    line_width: float = 1.0
    color: str = '#000000'
    margin: Margins = (0, 4, 0, 4)


@dataclass(frozen=True)
class SpacerNode:
    height: float


@dataclass(frozen=True)
class PageBreakNode:
    pass


@dataclass(frozen=True)
class StackNode:
    items: tuple[LayoutNode, ...]
    margin: Margins = (0, 0, 0, 0)


@dataclass(frozen=True)
class Column:
    node: LayoutNode
    width: Width = '*'


@dataclass(frozen=True)
class ColumnsNode:
    columns: tuple[Column, ...]
    gap: float = 0.0
    margin: Margins = (0, 0, 0, 0)


@dataclass(frozen=True)
class TableCell:
    content: LayoutNode
    fill: str | None = None
    col_span: int = 1


@dataclass(frozen=True)
class TableNode:
    body: tuple[tuple[TableCell, ...], ...]
    widths: tuple[Width, ...]
    header_rows: int = 0
    grid_color: str | None = '#e6e9ef'
    grid_width: float = 0.5
    padding: tuple[float, float, float, float] = (4, 2, 4, 2)
    width: float | None = None  # fixed total width, else the available width
    margin: Margins = (0, 0, 0, 0)

    @property
    def column_count(self) -> int:
        return len(self.widths)


LayoutNode = Union[
    TextNode,
    ImageNode,
    CanvasLineNode,
    SpacerNode,
    PageBreakNode,
    StackNode,
    ColumnsNode,
    TableNode,
]

PageCallback = Callable[[int, int], Union[LayoutNode, None]]


@dataclass(frozen=True)
class DocumentInfo:
    title: str
    author: str = ''
    subject: str = ''


@dataclass(frozen=True)
class DocumentDefinition:
    info: DocumentInfo
    content: tuple[LayoutNode, ...]
    images: Mapping[str, str] = field(default_factory=dict)
    page_size: str = 'A4'
    page_margins: Margins = (28, 40, 28, 34)
    default_style: TextStyle = field(default_factory=lambda: TextStyle(font_size=9, color='#111111'))
    styles: Mapping[str, TextStyle] = field(default_factory=dict)
    header: PageCallback | None = None
    footer: PageCallback | None = None

    def __post_init__(self) -> None:
        # read-only views so a returned definition cannot be edited in place
        object.__setattr__(self, 'content', tuple(self.content))
        object.__setattr__(self, 'images', MappingProxyType(dict(self.images)))
        object.__setattr__(self, 'styles', MappingProxyType(dict(self.styles)))

    @property
    def page_dimensions(self) -> tuple[float, float]:
        try:
            return PAGE_SIZES[self.page_size.upper()]
        except KeyError as exc:
            raise ValueError(f'unsupported page size: {self.page_size}') from exc

    @property
    def content_width(self) -> float:
        left, _, right, _ = self.page_margins
        return self.page_dimensions[0] - left - right


def text(value: object, **style: object) -> TextNode:
    margin = style.pop('margin', (0, 0, 0, 0))
    style_name = style.pop('style_name', None)
    return TextNode(
        text='' if value is None else str(value),
        style=TextStyle(**style),  # type: ignore[arg-type]
        style_name=style_name,  # type: ignore[arg-type]
        margin=margin,  # type: ignore[arg-type]
    )


def iter_nodes(node: LayoutNode):
    yield node
    if isinstance(node, StackNode):
        for item in node.items:
            yield from iter_nodes(item)
    elif isinstance(node, ColumnsNode):
        for column in node.columns:
            yield from iter_nodes(column.node)
    elif isinstance(node, TableNode):
        for row in node.body:
            for cell in row:
                yield from iter_nodes(cell.content)
