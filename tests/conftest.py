from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from pivot_api.main import app, get_data_context, get_report_store
from pivot_core.data import sample_dashboard_data, to_records
from pivot_core.reports import MemoryBackend, ReportStore


@pytest.fixture()
def scenario_records():
    return to_records(
        [
            {"region": "N", "sales": 100, "date": "2025-07-01"},
            {"region": "N", "sales": 200, "date": "2025-06-01"},
            {"region": "S", "sales": 50, "date": "2025-07-02"},
        ]
    )


@pytest.fixture()
def report_store() -> ReportStore:
    return ReportStore(MemoryBackend())


@pytest.fixture()
def client(report_store: ReportStore) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_data_context] = sample_dashboard_data
    app.dependency_overrides[get_report_store] = lambda: report_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
