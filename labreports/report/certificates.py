"""Per-record page layouts: one contested report or certificate per meter.

Every builder returns the full list of nodes for a single page, starting with
the branded header bar so that a page still carries its branding when it is
merged into another document.
"""
from __future__ import annotations

import zlib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from labreports.report.blocks import (
    SOFT_HEADER_FILL,
    SUBTLE_TEXT,
    Branding,
    SignatureRole,
    TableColumn,
    banner_row,
    data_table,
    header_bar,
    kv_table,
    label_cell,
    meta_grid,
    report_title,
    row2,
    row4,
    rule,
    section_title,
    signature_block,
    spanned,
    status_badge,
    value_cell,
)
from labreports.report.classifier import result_text
from labreports.report.formatting import (
    combined_import_error,
    dotted,
    element_error,
    fmt_fee,
    fmt_num,
    has_neutral,
    has_shunt,
    or_placeholder,
    yes_no,
)
from labreports.report.layout import LayoutNode, TableCell, TableNode, text
from labreports.types import ReportHeader, ReportRow


@dataclass(frozen=True)
class RecordContext:
    header: ReportHeader
    branding: Branding
    images: Mapping[str, str]


def contested_report_id(header: ReportHeader, rows: Sequence[ReportRow]) -> str:
    if header.report_id and header.report_id.strip():
        return header.report_id.strip()
    date_token = ''.join(ch for ch in header.primary_date if ch.isdigit())
    seed = f'{date_token}:{rows[0].serial if rows else ""}'
    return f'CON-{date_token}-{1000 + zlib.crc32(seed.encode("utf-8")) % 9000}'


def _page_top(ctx: RecordContext, title: str, *, subtitle: str | None = None) -> list[LayoutNode]:
    nodes: list[LayoutNode] = [
        header_bar(ctx.branding, ctx.images),
        rule(color='#c7c7c7'),
        report_title(title),
    ]
    if subtitle:
        nodes.append(text(subtitle, bold=True, font_size=10, alignment='center', margin=(0, 0, 0, 4)))
    return nodes


def _lab_signatures(header: ReportHeader, *, suffix: str = '') -> LayoutNode:
    return signature_block(
        (
            SignatureRole('Tested by', f'TESTING ASSISTANT{suffix}', header.testing_user or header.tester_name),
            SignatureRole('Verified by', f'JUNIOR ENGINEER{suffix}'),
            SignatureRole('Approved by', f'ASSISTANT ENGINEER{suffix}', header.approving_user),
        )
    )


def _record_meta(header: ReportHeader) -> TableNode:
    return meta_grid(
        [
            ('ZONE/DC', header.zone_display),
            ('DATE', header.primary_date),
            ('TEST METHOD', header.test_method),
            ('TEST STATUS', header.test_status),
            ('TESTING BENCH', header.testing_bench),
            ('TESTING USER', header.testing_user),
        ]
    )


def _badge_cell(value: str | None) -> TableCell:
    return TableCell(status_badge(value))


def _element_readings(row: ReportRow, prefix: str, title: str, *, badges: bool) -> TableNode:
    sub_test = _badge_cell if badges else value_cell

    def reading(name: str) -> str:
        return fmt_num(getattr(row, f'{prefix}_{name}'))

    error = element_error(row, prefix)
    return kv_table(
        [
            banner_row(title, fill=SOFT_HEADER_FILL),
            row4('Reading Before Test', reading('reading_before_test'), 'Reading After Test', reading('reading_after_test')),
            row4('Ref Start', reading('ref_start_reading'), 'Ref End', reading('ref_end_reading')),
            (
                label_cell('Starting Current Test'),
                sub_test(getattr(row, f'{prefix}_current_test')),
                label_cell('Creep Test'),
                sub_test(getattr(row, f'{prefix}_creep_test')),
            ),
            (
                label_cell('Dial Test'),
                sub_test(getattr(row, f'{prefix}_dial_test')),
                label_cell(f'Error % ({prefix.title()})'),
                value_cell(fmt_num(error, 2) if error is not None else None),
            ),
        ],
        margin=(0, 4, 0, 0),
    )


def _element_sections(row: ReportRow, *, badges: bool) -> list[LayoutNode]:
    blocks: list[LayoutNode] = []
    if has_shunt(row):
        blocks.append(_element_readings(row, 'shunt', 'SHUNT READINGS', badges=badges))
    if has_neutral(row):
        blocks.append(_element_readings(row, 'neutral', 'NEUTRAL READINGS', badges=badges))
    if blocks:
        blocks.insert(0, section_title('Shunt & Neutral Readings'))
    return blocks


def _combined_result(row: ReportRow) -> list[LayoutNode]:
    combined = combined_import_error(row)
    return [
        section_title('Combined Error'),
        kv_table(
            [
                banner_row('COMBINED RESULT'),
                row4(
                    'Final Error % (Combined)',
                    fmt_num(combined, 2) if combined is not None else None,
                    'Test Result',
                    result_text(row),
                ),
            ]
        ),
    ]


def contested_page(row: ReportRow, ctx: RecordContext, *, report_id: str) -> list[LayoutNode]:
    header = ctx.header
    nodes = _page_top(ctx, 'CONTESTED METER TESTING REPORT')
    nodes.append(text(f'Report ID: {report_id}', bold=True, alignment='right', margin=(0, 0, 0, 4)))

    nodes.append(section_title('Consumer Details'))
    nodes.append(
        kv_table(
            [
                row4('Zone / DC', header.zone_display, 'Date', header.primary_date),
                row4('Phase', header.phase, 'Testing Bench', header.testing_bench),
                row4('Testing User', header.testing_user, 'Approving User', header.approving_user),
                row2('Name of Consumer', row.consumer_name),
                row2('Account / IVRS', row.account_no),
                row2('Address', row.address),
                row2('Contested By', row.contested_by),
                row2('Payment Particulars', row.payment_particulars),
                row4('Receipt No', row.receipt_no, 'Receipt Date', row.receipt_date),
            ]
        )
    )

    nodes.append(section_title('Meter & Condition'))
    nodes.append(
        kv_table(
            [
                banner_row('Meter & Testing Summary'),
                row4('Meter No.', row.serial or dotted(10), 'Make', row.make or dotted(10)),
                row4('Capacity', row.capacity or dotted(10), 'Removal Reading', fmt_num(row.removal_reading) or dotted(8)),
                row4('Physical Condition', row.physical_condition_of_device, 'Found Burnt', yes_no(row.is_burned)),
                row4('Body Seal', row.seal_status, 'Glass Cover', row.meter_glass_cover),
                row4('Terminal Block', row.terminal_block, 'Meter Body', row.meter_body),
                row2('Any Other', row.other),
            ]
        )
    )

    nodes.extend(_element_sections(row, badges=False))
    nodes.extend(_combined_result(row))
    nodes.append(section_title('Remarks'))
    nodes.append(kv_table([row2('Remark', row.remark)]))
    nodes.append(_lab_signatures(header))
    return nodes


def p4_onm_page(row: ReportRow, ctx: RecordContext, *, report_id: str) -> list[LayoutNode]:
    header = ctx.header
    nodes = _page_top(ctx, 'P4 O&M METER TEST REPORT')
    nodes.append(text(f'Report ID: {report_id}', bold=True, alignment='right', margin=(0, 0, 0, 4)))
    nodes.append(
        meta_grid(
            [
                ('ZONE/DC', header.zone_display),
                ('DATE', header.primary_date),
                ('PHASE', header.phase),
                ('TESTING BENCH', header.testing_bench),
                ('TESTING USER', header.testing_user),
                ('APPROVING USER', header.approving_user),
            ]
        )
    )

    nodes.append(section_title('Consumer Details'))
    nodes.append(
        kv_table(
            [
                row2('Name of Consumer', row.consumer_name),
                row2('Account / IVRS', row.account_no),
                row2('Address', row.address),
                row2('Contested By', row.contested_by),
                row2('Payment Particulars', row.payment_particulars),
                row4('Receipt No', row.receipt_no, 'Receipt Date', row.receipt_date),
            ]
        )
    )

    nodes.append(section_title('To be filled by Testing Section Laboratory'))
    meter_error = row.error_percentage
    nodes.append(
        kv_table(
            [
                row4('Meter No.', row.serial, 'Make', row.make),
                row4('Capacity', row.capacity, 'Removal Reading', fmt_num(row.removal_reading)),
                row4('Condition at Removal', row.condition_at_removal, 'Testing Date', row.testing_date),
                row4('Physical Condition', row.physical_condition_of_device, 'Found Burnt', yes_no(row.is_burned)),
                row4('Body Seal', row.seal_status, 'Glass Cover', row.meter_glass_cover),
                row4('Terminal Block', row.terminal_block, 'Meter Body', row.meter_body),
                row2('Any Other', row.other),
                row4(
                    'Reading Before Test',
                    fmt_num(row.reading_before_test),
                    'Reading After Test',
                    fmt_num(row.reading_after_test),
                ),
                row4('kWh by RSS/RSM', fmt_num(row.rsm_kwh), 'kWh by Meter', fmt_num(row.meter_kwh)),
                row2('% Error', fmt_num(meter_error, 2) if meter_error is not None else None),
            ]
        )
    )

    nodes.extend(_element_sections(row, badges=True))
    nodes.extend(_combined_result(row))
    nodes.append(section_title('Remarks'))
    nodes.append(kv_table([row2('Final Remarks', row.final_remarks or row.remark)]))
    nodes.append(_lab_signatures(header))
    return nodes


def p4_vig_page(row: ReportRow, ctx: RecordContext) -> list[LayoutNode]:
    header = ctx.header
    nodes = _page_top(ctx, 'TEST RESULT FOR CONTESTED METER (P4 - VIG)')
    nodes.append(_record_meta(header))

    nodes.append(section_title('Consumer & Panchanama'))
    nodes.append(
        kv_table(
            [
                row2('Name of Consumer', row.consumer_name),
                row2('Address', row.address),
                row4('Account No.', row.account_no, 'Division / Zone', row.division_zone),
                row4('Panchanama No.', row.panchanama_no, 'Panchanama Date', row.panchanama_date),
                row2('Condition at Removal', row.condition_at_removal),
            ]
        )
    )
    nodes.append(
        data_table(
            (TableColumn('METER NO.'), TableColumn('MAKE'), TableColumn('CAPACITY'), TableColumn('READING')),
            [[or_placeholder(row.serial), or_placeholder(row.make), or_placeholder(row.capacity),
              or_placeholder(fmt_num(row.removal_reading))]],
        )
    )

    nodes.append(section_title('TO BE FILLED BY TESTING SECTION LABORATORY (RMTL)'))
    nodes.append(
        kv_table(
            [
                row4('Testing Date', row.testing_date, 'Found Burnt', yes_no(row.is_burned)),
                row4('Body Seal', row.seal_status, 'Glass Cover', row.meter_glass_cover),
                row4('Terminal Block', row.terminal_block, 'Meter Body', row.meter_body),
                row2('Any Other', row.other),
                row4(
                    'Reading As Found (Before Test)',
                    fmt_num(row.reading_before_test),
                    'After Test',
                    fmt_num(row.reading_after_test),
                ),
                row4('kWh by RSS/RSM', fmt_num(row.rsm_kwh), 'kWh by Meter', fmt_num(row.meter_kwh)),
                (
                    label_cell('% Error'),
                    value_cell(fmt_num(row.error_percentage, 2) if row.error_percentage is not None else None),
                    label_cell('Starting Current Test'),
                    _badge_cell(row.starting_current_test),
                ),
                (label_cell('Creep Test'),) + spanned(_badge_cell(row.creep_test), 3),
            ]
        )
    )
    nodes.append(text(f'TEST RESULT : {row.test_result or dotted(15)}', bold=True, margin=(0, 8, 0, 4)))
    nodes.append(kv_table([row2('Remarks', row.remark)]))
    nodes.append(_lab_signatures(header, suffix=' (RMTL)'))
    return nodes


def _two_column(rows: Sequence[tuple[str, object]]) -> TableNode:
    return kv_table(
        [(label_cell(label), value_cell(value)) for label, value in rows],
        widths=(150, '*'),
        margin=(0, 0, 0, 8),
    )


def solar_net_meter_page(row: ReportRow, ctx: RecordContext) -> list[LayoutNode]:
    header = ctx.header
    nodes = _page_top(ctx, 'SOLAR NET METER TEST REPORT')
    nodes.append(_record_meta(header))
    if row.certificate_no:
        nodes.append(text(f'Certificate No: {row.certificate_no}', bold=True, alignment='right', margin=(0, 0, 0, 6)))

    nodes.append(section_title('Consumer & Meter Information'))
    nodes.append(
        _two_column(
            [
                ('Consumer Name', row.consumer_name),
                ('Address', row.address),
                ('Meter Make', row.make),
                ('Serial Number', row.serial),
                ('Capacity', row.capacity),
            ]
        )
    )

    nodes.append(section_title('Testing Details'))
    nodes.append(
        kv_table(
            [
                row2('Date of Testing', row.testing_date),
                row2('Testing Fees', fmt_fee(row.testing_fees)),
                row4('M.R. No.', row.mr_no, 'M.R. Date', row.mr_date),
                row2('Reference No.', row.ref_no),
            ],
            margin=(0, 0, 0, 8),
        )
    )

    nodes.append(section_title('Meter Readings'))
    nodes.append(
        kv_table(
            [
                (label_cell('Reading Type'), label_cell('Value')) + spanned(label_cell('Final Reading'), 2),
                (
                    label_cell('Starting Reading'),
                    value_cell(fmt_num(row.starting_reading), alignment='center'),
                    label_cell('R:'),
                    value_cell(fmt_num(row.final_reading_r), alignment='center'),
                ),
                (
                    label_cell('Difference'),
                    value_cell(fmt_num(row.difference), alignment='center'),
                    label_cell('E:'),
                    value_cell(fmt_num(row.final_reading_e), alignment='center'),
                ),
            ],
            widths=('*', '*', '*', '*'),
            margin=(0, 0, 0, 8),
        )
    )

    nodes.append(section_title('Test Results'))
    nodes.append(
        kv_table(
            [
                (label_cell('Starting Current Test'), _badge_cell(row.starting_current_test)),
                (label_cell('Creep Test'), _badge_cell(row.creep_test)),
                (label_cell('Dial Test'), _badge_cell(row.dial_test)),
                (label_cell('Overall Result'), value_cell(row.test_result, bold=True)),
                (label_cell('Remarks'), value_cell(row.remark)),
            ],
            widths=(150, '*'),
            margin=(0, 0, 0, 12),
        )
    )
    nodes.append(
        signature_block(
            (
                SignatureRole('Tested by', 'Testing Assistant (RMTL)', header.testing_user),
                SignatureRole('Verified by', 'Junior Engineer (RMTL)'),
                SignatureRole('Checked by', 'Assistant Engineer (RMTL)'),
                SignatureRole('Approved by', 'Executive Engineer', header.approving_user),
            )
        )
    )
    return nodes


def solar_net_meter_cover(rows: Sequence[ReportRow], ctx: RecordContext) -> list[LayoutNode]:
    return [
        header_bar(ctx.branding, ctx.images),
        text('SOLAR NET METER TEST REPORTS', bold=True, font_size=16, alignment='center', margin=(0, 100, 0, 10)),
        text(
            f'Batch Summary • Generated on {or_placeholder(ctx.header.primary_date)}',
            font_size=10,
            color=SUBTLE_TEXT,
            alignment='center',
            margin=(0, 0, 0, 16),
        ),
        data_table(
            (TableColumn('Serial Number'), TableColumn('Consumer Name'), TableColumn('Result')),
            [[or_placeholder(r.serial), or_placeholder(r.consumer_name), or_placeholder(r.test_result)] for r in rows],
        ),
    ]


def solar_generation_meter_page(row: ReportRow, ctx: RecordContext) -> list[LayoutNode]:
    header = ctx.header
    nodes = _page_top(
        ctx,
        'SOLAR GENERATION METER TEST REPORT',
        subtitle='CERTIFICATE FOR A.C. SINGLE/THREE PHASE METER',
    )
    if row.certificate_no:
        nodes.append(text(f'Certificate No: {row.certificate_no}', bold=True, font_size=9, alignment='right'))
    nodes.append(_record_meta(header))

    nodes.append(
        kv_table(
            [
                row2('Name of Consumer', row.consumer_name),
                row2('Address', row.address),
                row4('Meter Make', row.make, 'Meter Sr. No.', row.serial),
                row4('Capacity', row.capacity, 'Date of Testing', row.testing_date),
                row4('Testing Fees', fmt_fee(row.testing_fees), 'Reference No.', row.ref_no),
                row4('M.R. No.', row.mr_no, 'M.R. Date', row.mr_date),
                banner_row('PHYSICAL CONDITION'),
                row4('Condition of Device', row.physical_condition_of_device, 'Seal Status', row.seal_status),
                row4('Glass Cover', row.meter_glass_cover, 'Terminal Block', row.terminal_block),
                row2('Meter Body', row.meter_body),
                banner_row('READINGS'),
                row4('Starting Reading', fmt_num(row.starting_reading, 4) if row.starting_reading is not None else None,
                     'Final Reading', fmt_num(row.final_reading_r, 4) if row.final_reading_r is not None else None),
                row2('Difference', fmt_num(row.difference, 4) if row.difference is not None else None),
                banner_row('TEST RESULTS'),
                (
                    label_cell('Starting Current Test'),
                    _badge_cell(row.starting_current_test),
                    label_cell('Creep Test'),
                    _badge_cell(row.creep_test),
                ),
                (label_cell('Dial Test'),) + spanned(_badge_cell(row.dial_test), 3),
                row2('Test Result', row.test_result),
                row2('Remark', row.remark),
            ],
            margin=(0, 0, 0, 6),
        )
    )
    nodes.extend(_element_sections(row, badges=True))
    nodes.append(_lab_signatures(header))
    return nodes
