from __future__ import annotations

from dataclasses import replace

import pytest

from labreports.errors import CompositionError, UnknownReportKindError
from labreports.report.blocks import LEFT_LOGO, RIGHT_LOGO
from labreports.report.certificates import contested_report_id
from labreports.report.composer import compose, default_filename, merge_documents
from labreports.report.descriptors import REGISTRY
from labreports.report.layout import PageBreakNode, TableNode, TextNode, iter_nodes
from labreports.types import ReportHeader, ReportKind, ReportRow


def _all_texts(definition) -> list[str]:
    texts = []
    for node in definition.content:
        texts.extend(item.text for item in iter_nodes(node) if isinstance(item, TextNode) and item.text)
    return texts


def _breaks(definition) -> int:
    return sum(1 for node in definition.content if isinstance(node, PageBreakNode))


def _summary(definition) -> str:
    return next(text for text in _all_texts(definition) if text.startswith('TOTAL:'))


class TestTabularStrategy:
    def test_summary_line_counts(self, settings, header_payload, meter_rows):
        definition = compose(ReportKind.stop_defective, header_payload, meter_rows, settings=settings)
        assert _summary(definition) == 'TOTAL: 3 • OK: 2 • DEF: 1'

    def test_empty_batch_summary(self, settings, header_payload):
        definition = compose('stop_defective', header_payload, [], settings=settings)
        assert _summary(definition) == 'TOTAL: 0 • OK: 0 • DEF: 0'
        assert _breaks(definition) == 0

    def test_one_table_holds_every_row(self, settings, header_payload):
        rows = [{'serial': f'S{i}', 'test_result': 'OK'} for i in range(120)]
        definition = compose(ReportKind.new_meter, header_payload, rows, settings=settings)
        tables = [node for node in definition.content if isinstance(node, TableNode) and node.header_rows == 1]
        assert len(tables) == 1
        assert len(tables[0].body) == 121
        assert _breaks(definition) == 0

    def test_result_column_uses_display_text(self, settings, header_payload, meter_rows):
        texts = _all_texts(compose(ReportKind.old_against_meter, header_payload, meter_rows, settings=settings))
        assert 'PASS — W/O DISPLAY' in texts
        assert 'DEF — DISPLAY OFF' in texts

    def test_meta_grid_and_branding(self, settings, header_payload):
        texts = _all_texts(compose(ReportKind.pq_meter, header_payload, [], settings=settings))
        assert settings.org_name in texts
        assert 'REMOTE METERING TESTING LABORATORY INDORE' in texts
        assert 'W12 - Indore City' in texts
        assert 'PQ METER TEST REPORT' in texts

    def test_ct_report_formats_deposit(self, settings):
        header = {'date': '2025-03-01', 'consumer_name': 'ACME', 'amount_deposited': '1500.00'}
        rows = [{'ct_no': 'CT1', 'ratio': '100/5', 'polarity': 'OK', 'remark': 'OK'}]
        texts = _all_texts(compose(ReportKind.ct_testing, header, rows, settings=settings))
        assert '1500/-' in texts
        assert 'CT1' in texts and '100/5' in texts

    def test_inward_receipt_switches_columns_for_ct(self, settings):
        header = {'device_type': 'CT', 'inward_no': 'IN-9', 'serials_csv': 'A, B'}
        texts = _all_texts(compose(ReportKind.inward_receipt, header, [{'serial': 'A'}], settings=settings))
        assert 'CT Ratio' in texts
        assert 'Voltage' not in texts
        assert 'Total Devices: 1' in texts
        assert not any(text.startswith('TOTAL:') for text in texts)

    def test_unparseable_inward_total_falls_back_to_row_count(self, settings):
        header = {'device_type': 'meter', 'total': 'n/a'}
        texts = _all_texts(compose(ReportKind.inward_receipt, header, [{'serial': 'A'}, {'serial': 'B'}], settings=settings))
        assert 'Total Devices: 2' in texts

    def test_gatepass_total_quantity(self, settings):
        header = {'gatepass_no': 'GP-1', 'issued_by': {'name': 'Store', 'designation': 'JE'}}
        rows = [{'serial': 'A', 'qty': 2}, {'serial': 'B'}]
        texts = _all_texts(compose(ReportKind.gatepass, header, rows, settings=settings))
        assert 'Total Qty: 3' in texts
        assert 'STORE' in texts

    def test_running_title_only_after_first_page(self, settings, header_payload):
        definition = compose(ReportKind.stop_defective, header_payload, [], settings=settings)
        assert definition.header(1, 2) is None
        assert 'STOP DEFECTIVE TEST REPORT' in definition.header(2, 2).text


class TestPerRecordStrategy:
    def test_empty_batch_still_has_one_page(self, settings, header_payload):
        definition = compose(ReportKind.contested, header_payload, [], settings=settings)
        assert definition.content
        assert _breaks(definition) == 0
        assert _all_texts(definition).count('CONTESTED METER TESTING REPORT') == 1

    def test_breaks_between_records_only(self, settings, header_payload):
        rows = [{'serial': f'M{i}'} for i in range(3)]
        definition = compose(ReportKind.p4_onm, header_payload, rows, settings=settings)
        assert _breaks(definition) == 2
        assert not isinstance(definition.content[-1], PageBreakNode)
        assert not isinstance(definition.content[0], PageBreakNode)

    @pytest.mark.parametrize(
        'kind',
        [ReportKind.contested, ReportKind.p4_onm, ReportKind.p4_vig, ReportKind.solar_net_meter,
         ReportKind.solar_generation_meter],
    )
    def test_every_certificate_kind_builds_from_empty_rows(self, settings, kind):
        definition = compose(kind, {}, None, settings=settings)
        assert _breaks(definition) == 0
        assert definition.footer(1, 1) is not None

    def test_solar_net_cover_page_for_batches(self, settings, header_payload):
        rows = [{'serial': 'S1', 'consumer_name': 'A'}, {'serial': 'S2', 'consumer_name': 'B'}]
        definition = compose(ReportKind.solar_net_meter, header_payload, rows, settings=settings)
        assert _breaks(definition) == 2
        assert 'SOLAR NET METER TEST REPORTS' in _all_texts(definition)

    def test_solar_net_drops_rows_without_serial(self, settings, header_payload):
        rows = [{'serial': 'S1', 'consumer_name': 'Kept Consumer'}, {'serial': '  ', 'consumer_name': 'Blank Serial'}, {'consumer_name': 'No Serial'}]
        definition = compose(ReportKind.solar_net_meter, header_payload, rows, settings=settings)
        texts = _all_texts(definition)
        assert _breaks(definition) == 0
        assert 'SOLAR NET METER TEST REPORTS' not in texts
        assert 'Kept Consumer' in texts
        assert 'Blank Serial' not in texts
        assert 'No Serial' not in texts

    def test_solar_net_without_any_serial_keeps_one_page(self, settings, header_payload):
        definition = compose(ReportKind.solar_net_meter, header_payload, [{'consumer_name': 'No Serial'}], settings=settings)
        assert definition.content
        assert _breaks(definition) == 0
        assert 'No Serial' not in _all_texts(definition)

    def test_missing_record_builder_is_a_composition_error(self, settings, header_payload, monkeypatch):
        broken = replace(REGISTRY[ReportKind.contested], record_page=None)
        monkeypatch.setitem(REGISTRY, ReportKind.contested, broken)
        with pytest.raises(CompositionError):
            compose(ReportKind.contested, header_payload, [{'serial': 'M-1'}], settings=settings)

    def test_shunt_section_only_when_readings_present(self, settings, header_payload):
        plain = _all_texts(compose(ReportKind.p4_onm, header_payload, [{'serial': 'X'}], settings=settings))
        assert 'SHUNT READINGS' not in plain
        with_shunt = _all_texts(
            compose(
                ReportKind.p4_onm,
                header_payload,
                [{'serial': 'X', 'shunt_reading_before_test': 10, 'shunt_reading_after_test': 20,
                  'shunt_ref_start_reading': 0, 'shunt_ref_end_reading': 10}],
                settings=settings,
            )
        )
        assert 'SHUNT READINGS' in with_shunt
        assert 'NEUTRAL READINGS' not in with_shunt
        # (10 - 10) / 10 * 100
        assert '0.00' in with_shunt

    def test_contested_report_id_fallback_is_stable(self, header_payload):
        header = ReportHeader.model_validate(header_payload)
        rows = [ReportRow(serial='M-1')]
        first = contested_report_id(header, rows)
        assert first == contested_report_id(header, rows)
        assert first.startswith('CON-20250115-')
        assert contested_report_id(header.model_copy(update={'report_id': ' R-9 '}), rows) == 'R-9'


class TestSnapshot:
    def test_later_header_changes_do_not_leak(self, settings, header_payload):
        images = {LEFT_LOGO: 'data:image/png;base64,AA==', RIGHT_LOGO: 'data:image/png;base64,AA=='}
        definition = compose(ReportKind.stop_defective, header_payload, [], images, settings=settings)
        before = definition.header(2, 2).text

        header_payload['date'] = '1999-01-01'
        images.clear()

        assert definition.header(2, 2).text == before
        assert set(definition.images) == {LEFT_LOGO, RIGHT_LOGO}

    def test_definition_is_read_only(self, settings, header_payload):
        definition = compose(ReportKind.stop_defective, header_payload, [], settings=settings)
        with pytest.raises(TypeError):
            definition.images['x'] = 'y'
        assert isinstance(definition.content, tuple)

    def test_malformed_input_is_a_composition_error(self, settings, header_payload):
        with pytest.raises(CompositionError):
            compose(ReportKind.stop_defective, 42, [], settings=settings)
        with pytest.raises(CompositionError):
            compose(ReportKind.stop_defective, header_payload, ['not-a-row'], settings=settings)


class TestMerge:
    def test_merge_two_single_record_reports(self, settings, header_payload):
        first = compose(
            ReportKind.solar_net_meter, header_payload, [{'serial': 'A'}], {LEFT_LOGO: 'left-a'}, settings=settings
        )
        second = compose(
            ReportKind.solar_net_meter,
            header_payload,
            [{'serial': 'B'}],
            {LEFT_LOGO: 'left-b', RIGHT_LOGO: 'right-b'},
            settings=settings,
        )
        merged = merge_documents([first, second])

        assert _breaks(merged) == 1
        assert merged.content == first.content + (PageBreakNode(),) + second.content
        assert set(merged.images) == {LEFT_LOGO, RIGHT_LOGO}
        assert merged.images[LEFT_LOGO] == 'left-b'
        assert merged.page_margins == first.page_margins
        assert merged.footer is first.footer

    def test_merge_needs_documents(self):
        with pytest.raises(ValueError):
            merge_documents([])


class TestDescriptors:
    def test_unknown_kind(self, settings):
        with pytest.raises(UnknownReportKindError) as info:
            compose('meter_of_the_month', {}, [], settings=settings)
        assert isinstance(info.value, KeyError)

    @pytest.mark.parametrize(
        'kind, header, expected',
        [
            (ReportKind.stop_defective, {'date': '2025-01-15'}, 'STOP_DEFECTIVE_2025-01-15.pdf'),
            (ReportKind.ct_testing, {'date_of_testing': '2025-01-15'}, 'CT_TESTING_2025-01-15.pdf'),
            (ReportKind.pq_meter, {}, 'PQ_METER_REPORT.pdf'),
            (ReportKind.inward_receipt, {'device_type': 'meter', 'inward_no': 'IN-4'}, 'Inward_Receipt_METER_IN-4.pdf'),
            (ReportKind.gatepass, {'gatepass_no': 'GP-12'}, 'Gatepass_GP-12.pdf'),
        ],
    )
    def test_default_filenames(self, kind, header, expected):
        assert default_filename(kind, header) == expected
