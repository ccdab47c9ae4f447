from __future__ import annotations

import base64

import pytest

from labreports.config import Settings

# 1x1 transparent PNG
PNG_BASE64 = 'iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII='
PNG_DATA_URL = f'data:image/png;base64,{PNG_BASE64}'


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(output_dir=tmp_path, ASSET_BASE_URL='http://assets.test/app/')


@pytest.fixture
def header_payload() -> dict:
    return {
        'date': '2025-01-15',
        'location_code': 'W12',
        'location_name': 'Indore City',
        'phase': 'SINGLE PHASE',
        'testMethod': 'ONLINE',
        'testStatus': 'COMPLETED',
        'testing_bench': 'BENCH-2',
        'testing_user': 'R. Sharma',
        'approving_user': 'A. Verma',
        'lab_name': 'Remote Metering Testing Laboratory Indore',
        'lab_address': 'Polo Ground, Indore',
        'lab_email': 'lab@example.test',
        'lab_phone': '0731-000000',
    }


@pytest.fixture
def meter_rows() -> list[dict]:
    return [
        {'serial_number': 'M-001', 'make': 'SECURE', 'capacity': '5-30A', 'test_result': 'OK'},
        {'serial_number': 'M-002', 'make': 'L&T', 'capacity': '10-60A', 'test_result': 'DEF', 'remark': 'DISPLAY OFF'},
        {'serial_number': 'M-003', 'make': 'HPL', 'capacity': '5-30A', 'test_result': 'PASS', 'remark': 'W/O DISPLAY'},
    ]


@pytest.fixture
def png_data_url() -> str:
    return PNG_DATA_URL


@pytest.fixture
def png_bytes() -> bytes:
    return base64.b64decode(PNG_BASE64)
