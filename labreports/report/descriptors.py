from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from labreports.errors import UnknownReportKindError
from labreports.report import certificates
from labreports.report.blocks import (
    SUBTLE_TEXT,
    SignatureRole,
    kv_table,
    meta_grid,
    row2,
    row4,
    section_title,
)
from labreports.report.certificates import RecordContext
from labreports.report.classifier import result_text
from labreports.report.formatting import fmt_money, fmt_num, join_parts, or_placeholder, present
from labreports.report.layout import LayoutNode, Width, text
from labreports.types import PaginationStrategy, ReportHeader, ReportKind, ReportRow

RowValue = Callable[[int, ReportRow], str]
RecordPage = Callable[[ReportRow, RecordContext, Sequence[ReportRow]], list[LayoutNode]]


@dataclass(frozen=True)
class ColumnSpec:
    title: str
    value: RowValue
    width: Width = '*'
    alignment: str = 'left'


@dataclass(frozen=True)
class ReportDescriptor:
    """Everything that distinguishes one report kind from another."""

    kind: ReportKind
    title: str
    strategy: PaginationStrategy
    filename: Callable[[ReportHeader], str]
    columns: tuple[ColumnSpec, ...] = ()
    # alternative item columns for CT inward receipts
    ct_columns: tuple[ColumnSpec, ...] = ()
    meta: Callable[[ReportHeader], list[LayoutNode]] | None = None
    trailer: Callable[[ReportHeader, Sequence[ReportRow]], list[LayoutNode]] | None = None
    signatures: Callable[[ReportHeader], tuple[SignatureRole, ...]] | None = None
    show_summary: bool = True
    record_page: RecordPage | None = None
    cover: Callable[[Sequence[ReportRow], RecordContext], list[LayoutNode]] | None = None
    # rows failing this are dropped before any page is built
    keep_row: Callable[[ReportRow], bool] | None = None
    hide_single_page_number: bool = False

    def columns_for(self, header: ReportHeader) -> tuple[ColumnSpec, ...]:
        if self.ct_columns and str(header.device_type or '').strip().upper() == 'CT':
            return self.ct_columns
        return self.columns


def _date_token(header: ReportHeader, fallback: str = 'REPORT') -> str:
    token = header.primary_date
    if not token:
        return fallback
    return re.sub(r'[^0-9A-Za-z_-]+', '-', token).strip('-') or fallback


def _prefixed(prefix: str) -> Callable[[ReportHeader], str]:
    def _build(header: ReportHeader) -> str:
        return f'{prefix}_{_date_token(header)}.pdf'

    return _build


def _inward_filename(header: ReportHeader) -> str:
    device = str(header.device_type or 'DEVICE').strip().upper() or 'DEVICE'
    tag = header.inward_no or _date_token(header)
    return f'Inward_Receipt_{device}_{tag}.pdf'


def _gatepass_filename(header: ReportHeader) -> str:
    return f'Gatepass_{header.gatepass_no or _date_token(header)}.pdf'


# -- column helpers ----------------------------------------------------------


def _field(name: str) -> RowValue:
    return lambda index, row: or_placeholder(getattr(row, name))


def _serial_no(index: int, row: ReportRow) -> str:
    return str(index + 1)


def _result(index: int, row: ReportRow) -> str:
    return result_text(row)


def _remark(index: int, row: ReportRow) -> str:
    return or_placeholder(row.remark)


def _qty(index: int, row: ReportRow) -> str:
    return fmt_num(row.qty) or '1'


def _spec(index: int, row: ReportRow) -> str:
    return or_placeholder(row.spec or row.capacity)


_SNO = ColumnSpec('S.No', _serial_no, width=28, alignment='center')


def _meter_columns(serial_title: str, result_title: str) -> tuple[ColumnSpec, ...]:
    return (
        _SNO,
        ColumnSpec(serial_title, _field('serial')),
        ColumnSpec('MAKE', _field('make')),
        ColumnSpec('CAPACITY', _field('capacity')),
        ColumnSpec(result_title, _result, width=180),
    )


_CT_TEST_COLUMNS = (
    _SNO,
    ColumnSpec('C.T No.', _field('serial')),
    ColumnSpec('Make', _field('make')),
    ColumnSpec('Cap.', _field('capacity')),
    ColumnSpec('Ratio', _field('ratio')),
    ColumnSpec('Polarity', _field('polarity')),
    ColumnSpec('Remark', _result, width=120),
)

_INWARD_METER_COLUMNS = (
    _SNO,
    ColumnSpec('Serial No', _field('serial')),
    ColumnSpec('Make', _field('make')),
    ColumnSpec('Capacity', _field('capacity')),
    ColumnSpec('Phase', _field('phase')),
    ColumnSpec('Conn', _field('connection_type')),
    ColumnSpec('Category', _field('meter_category')),
    ColumnSpec('Type', _field('meter_type')),
    ColumnSpec('Voltage', _field('voltage_rating')),
    ColumnSpec('Current', _field('current_rating')),
    ColumnSpec('Purpose', _field('purpose')),
    ColumnSpec('Remark', _remark),
)

_INWARD_CT_COLUMNS = (
    _SNO,
    ColumnSpec('Serial No', _field('serial')),
    ColumnSpec('Make', _field('make')),
    ColumnSpec('Conn', _field('connection_type')),
    ColumnSpec('CT Class', _field('ct_class')),
    ColumnSpec('CT Ratio', _field('ratio')),
    ColumnSpec('Purpose', _field('purpose')),
    ColumnSpec('Remark', _remark),
)

_GATEPASS_COLUMNS = (
    ColumnSpec('Sr', _serial_no, width=24, alignment='center'),
    ColumnSpec('Device Type', _field('device_type')),
    ColumnSpec('Serial No.', _field('serial')),
    ColumnSpec('Make', _field('make')),
    ColumnSpec('Spec/Capacity', _spec),
    ColumnSpec('Qty', _qty, width=36, alignment='right'),
    ColumnSpec('Remark', _remark),
)


# -- meta blocks -------------------------------------------------------------


def testing_meta(header: ReportHeader) -> list[LayoutNode]:
    return [
        meta_grid(
            [
                ('ZONE/DC', header.zone_display),
                ('PHASE', header.phase),
                ('TESTING DATE', header.primary_date),
                ('TEST METHOD', header.test_method),
                ('TEST STATUS', header.test_status),
                ('APPROVING USER', header.approving_user),
                ('TESTING BENCH', header.testing_bench),
                ('TESTING USER', header.testing_user),
            ]
        )
    ]


def ct_meta(header: ReportHeader) -> list[LayoutNode]:
    return [
        kv_table(
            [
                row2('Name of consumer', header.consumer_name),
                row2('Address', header.address),
                row4('No. of C.T', header.no_of_ct, 'CITY CLASS', header.city_class),
                row4('Ref.', header.ref_no, 'C.T Make', header.ct_make),
                row4('M.R. / Txn', header.mr_no, 'M.R. Date', header.mr_date),
                row4('Amount Deposited (₹)', fmt_money(header.amount_deposited), 'Date of Testing', header.primary_date),
                row4('Primary Current', header.primary_current, 'Secondary Current', header.secondary_current),
            ],
            margin=(0, 0, 0, 8),
        )
    ]


def inward_meta(header: ReportHeader) -> list[LayoutNode]:
    nodes: list[LayoutNode] = [
        meta_grid(
            [
                ('INWARD NO', header.inward_no),
                ('DATE', header.primary_date),
                ('OFFICE TYPE', header.office_type),
                ('ZONE/DC', header.zone_display),
                ('DEVICE TYPE', header.device_type),
                ('LAB ID', header.lab_id),
            ]
        )
    ]
    if present(header.serials_csv):
        nodes.append(text('Serials', bold=True, margin=(0, 0, 0, 2)))
        nodes.append(text(header.serials_csv, font_size=8, color=SUBTLE_TEXT, margin=(0, 0, 0, 8)))
    return nodes


def inward_trailer(header: ReportHeader, rows: Sequence[ReportRow]) -> list[LayoutNode]:
    total = header.total if header.total is not None else len(rows)
    return [text(f'Total Devices: {total}', bold=True, alignment='right', margin=(0, 6, 0, 0))]


def gatepass_meta(header: ReportHeader) -> list[LayoutNode]:
    contact = join_parts([header.contact_name, f'• {header.contact_mobile}' if present(header.contact_mobile) else None])
    return [
        text(f'Gatepass No: {or_placeholder(header.gatepass_no)}', alignment='right', margin=(0, 0, 0, 4)),
        kv_table(
            [
                row4('From', header.from_office, 'To', header.to_office),
                row4('Mode of Dispatch', header.mode_of_dispatch, 'Vehicle No.', header.vehicle_no),
                row4('Reference', header.reference, 'Contact', contact),
                row4('Date', header.primary_date, 'Zone/DC', header.zone_display),
            ],
            margin=(0, 0, 0, 8),
        ),
        section_title('Items'),
    ]


def gatepass_trailer(header: ReportHeader, rows: Sequence[ReportRow]) -> list[LayoutNode]:
    total_qty = sum(row.qty if row.qty is not None else 1 for row in rows)
    nodes: list[LayoutNode] = [
        text(f'Total Qty: {fmt_num(total_qty)}', bold=True, alignment='right', margin=(0, 4, 0, 0)),
    ]
    if present(header.notes):
        nodes.append(section_title('Notes'))
        nodes.append(text(header.notes))
    return nodes


# -- signatures ----------------------------------------------------------------


def lab_signatures(header: ReportHeader) -> tuple[SignatureRole, ...]:
    return (
        SignatureRole('Tested by', 'TESTING ASSISTANT (RMTL)', header.testing_user or header.tester_name),
        SignatureRole('Verified by', 'JUNIOR ENGINEER (RMTL)'),
        SignatureRole('Approved by', 'ASSISTANT ENGINEER (RMTL)', header.approving_user),
    )


def inward_signatures(header: ReportHeader) -> tuple[SignatureRole, ...]:
    return (
        SignatureRole('Submitted by', or_placeholder(header.office_type, 'OFFICE')),
        SignatureRole('Received by', 'RMTL', header.testing_user),
    )


def gatepass_signatures(header: ReportHeader) -> tuple[SignatureRole, ...]:
    return (
        SignatureRole('Issued By', or_placeholder(header.issued_by_designation, ''), header.issued_by_name),
        SignatureRole('Received By', or_placeholder(header.received_by_designation, ''), header.received_by_name),
    )


# -- record pages ----------------------------------------------------------------


def _contested(row: ReportRow, ctx: RecordContext, rows: Sequence[ReportRow]) -> list[LayoutNode]:
    return certificates.contested_page(row, ctx, report_id=certificates.contested_report_id(ctx.header, rows))


def _p4_onm(row: ReportRow, ctx: RecordContext, rows: Sequence[ReportRow]) -> list[LayoutNode]:
    return certificates.p4_onm_page(row, ctx, report_id=certificates.contested_report_id(ctx.header, rows))


def _p4_vig(row: ReportRow, ctx: RecordContext, rows: Sequence[ReportRow]) -> list[LayoutNode]:
    return certificates.p4_vig_page(row, ctx)


def _solar_net(row: ReportRow, ctx: RecordContext, rows: Sequence[ReportRow]) -> list[LayoutNode]:
    return certificates.solar_net_meter_page(row, ctx)


def _solar_generation(row: ReportRow, ctx: RecordContext, rows: Sequence[ReportRow]) -> list[LayoutNode]:
    return certificates.solar_generation_meter_page(row, ctx)


def _tabular(kind: ReportKind, title: str, prefix: str, columns: tuple[ColumnSpec, ...], **extra) -> ReportDescriptor:
    extra.setdefault('meta', testing_meta)
    extra.setdefault('signatures', lab_signatures)
    filename = extra.pop('filename', _prefixed(prefix))
    return ReportDescriptor(
        kind=kind,
        title=title,
        strategy=PaginationStrategy.tabular,
        filename=filename,
        columns=columns,
        **extra,
    )


def _has_serial(row: ReportRow) -> bool:
    return present(row.serial)


def _per_record(kind: ReportKind, title: str, prefix: str, page: RecordPage, **extra) -> ReportDescriptor:
    extra.setdefault('hide_single_page_number', True)
    return ReportDescriptor(
        kind=kind,
        title=title,
        strategy=PaginationStrategy.per_record,
        filename=_prefixed(prefix),
        record_page=page,
        **extra,
    )


REGISTRY: dict[ReportKind, ReportDescriptor] = {
    descriptor.kind: descriptor
    for descriptor in (
        _tabular(
            ReportKind.stop_defective,
            'STOP DEFECTIVE TEST REPORT',
            'STOP_DEFECTIVE',
            _meter_columns('METER NUMBER', 'TEST RESULT'),
        ),
        _tabular(
            ReportKind.old_against_meter,
            'AGAINST OLD METER TEST REPORT',
            'AGAINST_OLD_METER',
            _meter_columns('METER NUMBER', 'TEST RESULT / REMARK'),
        ),
        _tabular(
            ReportKind.smart_against_meter,
            'SMART AGAINST METER TEST REPORT',
            'SMART_AGAINST_METER',
            _meter_columns('METER NUMBER', 'TEST RESULT / REMARK'),
        ),
        _tabular(
            ReportKind.pq_meter,
            'PQ METER TEST REPORT',
            'PQ_METER',
            _meter_columns('PQ METER NUMBER', 'TEST RESULT / REMARK'),
        ),
        _tabular(
            ReportKind.new_meter,
            'NEW METER TEST REPORT',
            'NEW_METER',
            _meter_columns('METER NUMBER', 'RESULT / REMARK'),
        ),
        _tabular(
            ReportKind.ct_testing,
            'CT TESTING REPORT',
            'CT_TESTING',
            _CT_TEST_COLUMNS,
            meta=ct_meta,
        ),
        _tabular(
            ReportKind.inward_receipt,
            'RMTL INWARD RECEIPT',
            'Inward_Receipt',
            _INWARD_METER_COLUMNS,
            ct_columns=_INWARD_CT_COLUMNS,
            meta=inward_meta,
            trailer=inward_trailer,
            signatures=inward_signatures,
            filename=_inward_filename,
            show_summary=False,
        ),
        _tabular(
            ReportKind.gatepass,
            'GATE PASS',
            'Gatepass',
            _GATEPASS_COLUMNS,
            meta=gatepass_meta,
            trailer=gatepass_trailer,
            signatures=gatepass_signatures,
            filename=_gatepass_filename,
            show_summary=False,
        ),
        _per_record(ReportKind.contested, 'CONTESTED METER TESTING REPORT', 'CONTESTED_REPORT', _contested),
        _per_record(ReportKind.p4_onm, 'P4 O&M METER TEST REPORT', 'P4_ONM_REPORT', _p4_onm),
        _per_record(ReportKind.p4_vig, 'P4 VIGILANCE METER TEST REPORT', 'P4_VIG_REPORT', _p4_vig),
        _per_record(
            ReportKind.solar_net_meter,
            'SOLAR NET METER TEST REPORT',
            'SOLAR_NET_METER',
            _solar_net,
            cover=certificates.solar_net_meter_cover,
            keep_row=_has_serial,
        ),
        _per_record(
            ReportKind.solar_generation_meter,
            'SOLAR GENERATION METER TEST REPORT',
            'SOLAR_GENERATION_METER',
            _solar_generation,
        ),
    )
}


def get_descriptor(kind: ReportKind | str) -> ReportDescriptor:
    try:
        return REGISTRY[ReportKind(kind)]
    except (ValueError, KeyError) as exc:
        raise UnknownReportKindError(kind) from exc
