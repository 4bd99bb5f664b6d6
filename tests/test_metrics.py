"""Tests for metric helpers."""

from prometheus_client import REGISTRY

from storefront import __version__, metrics


def test_app_info_reports_package_version():
    assert (
        REGISTRY.get_sample_value("storefront_info", {"version": __version__, "name": "storefront"})
        == 1.0
    )


def test_record_job_run_counts_by_status():
    labels = {"task": "metrics-test", "status": "success"}
    before = REGISTRY.get_sample_value("job_runs_total", labels) or 0.0

    metrics.record_job_run("metrics-test", success=True)

    assert REGISTRY.get_sample_value("job_runs_total", labels) == before + 1
    assert REGISTRY.get_sample_value("job_last_run_timestamp", {"task": "metrics-test"}) > 0
