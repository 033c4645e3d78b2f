from __future__ import annotations

from pivot_core.filters import config_to_dict, normalize_config
from pivot_core.reports import FileBackend, MemoryBackend, ReportStore

RAW_CONFIG = {
    "row_fields": ["region", "product"],
    "column_fields": ["category"],
    "measures": [
        {"source_field": "sales", "aggregation": "sum", "label": "Sales"},
        {"source_field": "area", "aggregation": "avg", "label": None},
    ],
    "conversions": [{"field": "area", "dimension": "area", "target_unit": "ft2"}],
    "date_filter": {"kind": "month", "value": "2025-07"},
    "field_filters": [{"field": "region", "allowed_values": ["North", "South"]}, {"field": "product", "allowed_values": []}],
}


class BrokenBackend:
    def __init__(self, stored=None):
        self.stored = stored

    def read(self, key):
        return self.stored

    def write(self, key, value):
        raise OSError("disk full")


def test_config_round_trips_without_loss():
    config = normalize_config(RAW_CONFIG)
    assert config_to_dict(config) == RAW_CONFIG
    assert normalize_config(config_to_dict(config)) == config


def test_save_assigns_identity_and_timestamps(report_store):
    report = report_store.save("July by region", RAW_CONFIG)
    assert report is not None
    assert report.id
    assert report.created_at == report.updated_at
    assert [r.id for r in report_store.list_reports()] == [report.id]
    assert report_store.get(report.id).config == normalize_config(RAW_CONFIG)


def test_rename_only_touches_name_and_updated_at(report_store):
    report = report_store.save("Old", RAW_CONFIG)
    renamed = report_store.rename(report.id, "New")
    assert renamed.name == "New"
    assert renamed.id == report.id
    assert renamed.created_at == report.created_at
    assert renamed.updated_at >= report.updated_at
    assert renamed.config == report.config
    assert report_store.get(report.id).name == "New"
    assert report_store.rename("missing", "x") is None


def test_delete_reports_success_flag(report_store):
    report = report_store.save("Tmp", RAW_CONFIG)
    assert report_store.delete(report.id) is True
    assert report_store.delete(report.id) is False
    assert report_store.list_reports() == []


def test_load_config_replaces_all_parameters(report_store):
    report = report_store.save("Full", RAW_CONFIG)
    loaded = report_store.load_config(report.id)
    assert config_to_dict(loaded) == RAW_CONFIG
    assert report_store.load_config("nope") is None


def test_corrupt_or_wrong_shape_content_reads_as_empty():
    backend = MemoryBackend()
    backend.write("pivotReports", "{not json")
    assert ReportStore(backend).list_reports() == []
    backend.write("pivotReports", '{"id": "1"}')
    assert ReportStore(backend).list_reports() == []


def test_write_failures_return_flags_instead_of_raising():
    store = ReportStore(BrokenBackend())
    assert store.save("x", RAW_CONFIG) is None
    assert store.list_reports() == []


def test_delete_failure_returns_false():
    seeded = ReportStore(MemoryBackend())
    report = seeded.save("x", RAW_CONFIG)
    stored = seeded.backend.read("pivotReports")
    store = ReportStore(BrokenBackend(stored))
    assert store.delete(report.id) is False
    assert store.rename(report.id, "y") is None


def test_file_backend_persists_across_store_instances(tmp_path):
    first = ReportStore(FileBackend(tmp_path / "reports"))
    report = first.save("Persisted", RAW_CONFIG)
    second = ReportStore(FileBackend(tmp_path / "reports"))
    assert [r.name for r in second.list_reports()] == ["Persisted"]
    assert second.get(report.id).config == first.get(report.id).config
    assert (tmp_path / "reports" / "pivotReports.json").exists()


def test_namespaces_are_isolated():
    backend = MemoryBackend()
    ReportStore(backend, namespace="a").save("only in a", RAW_CONFIG)
    assert ReportStore(backend, namespace="b").list_reports() == []


def test_allowed_values_survive_the_store_verbatim(report_store):
    raw = {"row_fields": ["region"], "field_filters": [{"field": "region", "allowed_values": ["", " N", "N"]}]}
    report = report_store.save("Blanks", raw)
    loaded = report_store.load_config(report.id)
    assert loaded.field_filters[0].allowed_values == ("", " N", "N")
    assert loaded == report.config
