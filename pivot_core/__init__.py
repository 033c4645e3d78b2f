"""Core (UI-agnostic) pivot logic.

This package contains:
- record ingestion (CSV/JSON/XLSX -> tagged records via pandas)
- date and categorical row filters
- the aggregation primitive and the pivot matrix engine
- CSV export, chart helpers (Altair -> Vega-Lite spec dict)
- the saved report store
"""
