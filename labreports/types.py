from __future__ import annotations

import math
from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, model_validator


def coerce_number(value: Any) -> float | None:
    """Lenient numeric parse: anything unusable becomes None instead of failing validation."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        token = str(value).strip().replace(',', '')
        if not token:
            return None
        try:
            number = float(token)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _coerce_flag(value: Any) -> bool | None:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    token = str(value).strip().lower()
    if token in {'1', 'true', 'yes', 'y'}:
        return True
    if token in {'0', 'false', 'no', 'n'}:
        return False
    return None


def _coerce_count(value: Any) -> int | None:
    number = coerce_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


Text = Annotated[str | None, BeforeValidator(_coerce_text)]
Number = Annotated[float | None, BeforeValidator(coerce_number)]
Count = Annotated[int | None, BeforeValidator(_coerce_count)]
Flag = Annotated[bool | None, BeforeValidator(_coerce_flag)]


class ReportKind(str, Enum):
    stop_defective = 'stop_defective'
    old_against_meter = 'old_against_meter'
    smart_against_meter = 'smart_against_meter'
    pq_meter = 'pq_meter'
    new_meter = 'new_meter'
    ct_testing = 'ct_testing'
    inward_receipt = 'inward_receipt'
    gatepass = 'gatepass'
    contested = 'contested'
    p4_onm = 'p4_onm'
    p4_vig = 'p4_vig'
    solar_net_meter = 'solar_net_meter'
    solar_generation_meter = 'solar_generation_meter'


class PaginationStrategy(str, Enum):
    tabular = 'tabular'
    per_record = 'per_record'


class LabInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='ignore')

    name: Text = Field(default=None, validation_alias=AliasChoices('name', 'lab_name'))
    address: Text = Field(
        default=None,
        validation_alias=AliasChoices('address', 'address_line', 'lab_address'),
    )
    email: Text = Field(default=None, validation_alias=AliasChoices('email', 'lab_email'))
    phone: Text = Field(default=None, validation_alias=AliasChoices('phone', 'lab_phone'))


_FLAT_LAB_KEYS = {
    'lab_name': 'name',
    'lab_address': 'address',
    'lab_email': 'email',
    'lab_phone': 'phone',
}


class ReportHeader(BaseModel):
    """Printed context of one report build. Immutable once validated."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='allow')

    date: Text = None
    zone: Text = None
    location_code: Text = None
    location_name: Text = None
    phase: Text = None
    test_method: Text = Field(default=None, validation_alias=AliasChoices('test_method', 'testMethod'))
    test_status: Text = Field(default=None, validation_alias=AliasChoices('test_status', 'testStatus'))
    testing_bench: Text = None
    testing_user: Text = None
    approving_user: Text = None
    tester_name: Text = Field(default=None, validation_alias=AliasChoices('tester_name', 'testerName'))
    report_id: Text = None
    lab: LabInfo = Field(default_factory=LabInfo)
    left_logo_url: Text = Field(default=None, validation_alias=AliasChoices('left_logo_url', 'leftLogoUrl'))
    right_logo_url: Text = Field(
        default=None,
        validation_alias=AliasChoices('right_logo_url', 'rightLogoUrl'),
    )

    # CT testing consumer block
    consumer_name: Text = None
    address: Text = None
    no_of_ct: Text = None
    city_class: Text = None
    ref_no: Text = None
    ct_make: Text = None
    mr_no: Text = None
    mr_date: Text = None
    amount_deposited: Text = None
    date_of_testing: Text = None
    primary_current: Text = None
    secondary_current: Text = None

    # Inward receipt
    title: Text = None
    org_name: Text = Field(default=None, validation_alias=AliasChoices('org_name', 'orgName'))
    lab_id: Text = None
    office_type: Text = None
    device_type: Text = None
    inward_no: Text = None
    serials_csv: Text = None
    total: Count = None

    # Gate pass
    gatepass_no: Text = None
    from_office: Text = None
    to_office: Text = None
    mode_of_dispatch: Text = None
    vehicle_no: Text = None
    reference: Text = None
    contact_name: Text = None
    contact_mobile: Text = None
    issued_by_name: Text = None
    issued_by_designation: Text = None
    received_by_name: Text = None
    received_by_designation: Text = None
    notes: Text = None

    @model_validator(mode='before')
    @classmethod
    def _normalize_nested_blocks(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        payload = dict(data)

        lab = payload.get('lab')
        if isinstance(lab, Mapping):
            lab = LabInfo.model_validate(dict(lab))
        lab_payload = lab.model_dump() if isinstance(lab, LabInfo) else {}
        for flat_key, nested_key in _FLAT_LAB_KEYS.items():
            if flat_key not in payload:
                continue
            flat_value = payload.pop(flat_key)
            if lab_payload.get(nested_key) in (None, ''):
                lab_payload[nested_key] = flat_value
        payload['lab'] = lab_payload

        # logoDataUrl is the single-logo spelling used by inward receipts
        if payload.get('logoDataUrl') and not payload.get('left_logo_url') and not payload.get('leftLogoUrl'):
            payload['left_logo_url'] = payload.pop('logoDataUrl')

        for block, prefix in (('contact', 'contact'), ('issued_by', 'issued_by'), ('received_by', 'received_by')):
            nested = payload.get(block)
            if not isinstance(nested, Mapping):
                continue
            payload.pop(block)
            for key, value in nested.items():
                target = f'{prefix}_{key}'
                payload.setdefault(target, value)
        return payload

    @property
    def zone_display(self) -> str:
        if self.zone and self.zone.strip():
            return self.zone.strip()
        parts = [str(part).strip() for part in (self.location_code, self.location_name) if part and str(part).strip()]
        return ' - '.join(parts)

    @property
    def primary_date(self) -> str:
        return str(self.date or self.date_of_testing or '').strip()


class ReportRow(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='allow')

    serial: Text = Field(
        default=None,
        validation_alias=AliasChoices('serial', 'serial_number', 'meter_sr_no', 'ct_no', 'serial_no'),
    )
    make: Text = Field(default=None, validation_alias=AliasChoices('make', 'meter_make'))
    capacity: Text = Field(default=None, validation_alias=AliasChoices('capacity', 'meter_capacity', 'cap'))
    test_result: Text = None
    remark: Text = None
    final_remarks: Text = None

    # consumer / payment
    certificate_no: Text = None
    consumer_name: Text = None
    address: Text = None
    account_no: Text = Field(
        default=None,
        validation_alias=AliasChoices('account_no', 'account_no_ivrs', 'account_number'),
    )
    contested_by: Text = None
    payment_particulars: Text = None
    receipt_no: Text = None
    receipt_date: Text = None
    division_zone: Text = None
    panchanama_no: Text = None
    panchanama_date: Text = None
    condition_at_removal: Text = None
    testing_date: Text = Field(default=None, validation_alias=AliasChoices('testing_date', 'date_of_testing'))
    testing_fees: Text = None
    mr_no: Text = None
    mr_date: Text = None
    ref_no: Text = None
    removal_reading: Number = None

    # physical inspection
    physical_condition_of_device: Text = None
    is_burned: Flag = None
    seal_status: Text = None
    meter_glass_cover: Text = None
    terminal_block: Text = None
    meter_body: Text = None
    other: Text = None

    # shunt element
    shunt_reading_before_test: Number = None
    shunt_reading_after_test: Number = None
    shunt_ref_start_reading: Number = None
    shunt_ref_end_reading: Number = None
    shunt_current_test: Text = None
    shunt_creep_test: Text = None
    shunt_dial_test: Text = Field(
        default=None,
        validation_alias=AliasChoices('shunt_dial_test', 'shunt_dail_test'),
    )
    shunt_error_percentage: Number = None

    # neutral element
    neutral_reading_before_test: Number = Field(
        default=None,
        validation_alias=AliasChoices('neutral_reading_before_test', 'nutral_reading_before_test'),
    )
    neutral_reading_after_test: Number = Field(
        default=None,
        validation_alias=AliasChoices('neutral_reading_after_test', 'nutral_reading_after_test'),
    )
    neutral_ref_start_reading: Number = Field(
        default=None,
        validation_alias=AliasChoices('neutral_ref_start_reading', 'nutral_ref_start_reading'),
    )
    neutral_ref_end_reading: Number = Field(
        default=None,
        validation_alias=AliasChoices('neutral_ref_end_reading', 'nutral_ref_end_reading'),
    )
    neutral_current_test: Text = Field(
        default=None,
        validation_alias=AliasChoices('neutral_current_test', 'nutral_current_test'),
    )
    neutral_creep_test: Text = Field(
        default=None,
        validation_alias=AliasChoices('neutral_creep_test', 'nutral_creep_test'),
    )
    neutral_dial_test: Text = Field(
        default=None,
        validation_alias=AliasChoices('neutral_dial_test', 'nutral_dail_test', 'nutral_dial_test'),
    )
    neutral_error_percentage: Number = Field(
        default=None,
        validation_alias=AliasChoices('neutral_error_percentage', 'nutral_error_percentage'),
    )

    error_percentage_import: Number = None
    error_percentage: Number = None
    reading_before_test: Number = None
    reading_after_test: Number = None
    rsm_kwh: Number = None
    meter_kwh: Number = None

    # solar certificates
    starting_reading: Number = None
    final_reading_r: Number = None
    final_reading_e: Number = None
    difference: Number = None
    starting_current_test: Text = None
    creep_test: Text = None
    dial_test: Text = None

    # CT
    ratio: Text = Field(default=None, validation_alias=AliasChoices('ratio', 'ct_ratio'))
    polarity: Text = None
    ct_class: Text = None

    # inward / dispatch
    phase: Text = None
    connection_type: Text = None
    meter_category: Text = None
    meter_type: Text = None
    voltage_rating: Text = None
    current_rating: Text = None
    purpose: Text = None
    inward_no: Text = None
    device_type: Text = None
    spec: Text = None
    qty: Number = None


class BatchReport(BaseModel):
    header: ReportHeader
    rows: list[ReportRow] = Field(default_factory=list)
    file_name: str | None = None
