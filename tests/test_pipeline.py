"""Tests for slowlog/pipeline.py against logs/sample-slow.log"""

import os

import pytest

from slowlog.extractor import FatalLogFormatError, extract
from slowlog.filters import QueryTimeGreaterThan, UserEquals
from slowlog.pipeline import fingerprint_records, run_pipeline

SAMPLE_LOG = os.path.join(os.path.dirname(__file__), "..", "logs", "sample-slow.log")

ORDERS_FINGERPRINT = "SELECT * FROM orders WHERE customer_id = 0;"


@pytest.fixture
def sample_lines():
    with open(SAMPLE_LOG, "r", encoding="utf-8") as f:
        return f.readlines()


class TestRunPipeline:
    def test_normalized_aggregation(self, sample_lines):
        result = run_pipeline(sample_lines)
        assert result.extracted == 5
        assert len(result.entries) == 3
        orders = result.entries[ORDERS_FINGERPRINT]
        assert orders.count == 2
        assert orders.total_time == 2_000_000
        assert orders.avg_time == 1_000_000
        assert orders.max_time == 1_250_000
        assert orders.sample.host == "web-1"

    def test_summary(self, sample_lines):
        summary = run_pipeline(sample_lines).summary
        assert summary.total_queries == 5
        assert summary.unique_queries == 3
        assert summary.avg_time == 1_440_000
        assert summary.max_time == 3_000_000

    def test_without_normalization_every_text_is_distinct(self, sample_lines):
        result = run_pipeline(sample_lines, normalize=False)
        assert len(result.entries) == 5
        assert "SELECT * FROM orders WHERE customer_id = 99;" in result.entries

    def test_filters_applied_before_aggregation(self, sample_lines):
        result = run_pipeline(sample_lines, filters=[UserEquals("report")])
        assert result.summary.total_queries == 2
        assert len(result.entries) == 1

    def test_query_time_filter(self, sample_lines):
        result = run_pipeline(sample_lines, filters=[QueryTimeGreaterThan(1_000)])
        assert result.summary.total_queries == 3
        assert result.summary.unique_queries == 2

    def test_records_kept_only_when_not_aggregating(self, sample_lines):
        assert run_pipeline(sample_lines).records == []
        records = run_pipeline(sample_lines, aggregate=False).records
        assert [r.record.user for r in records] == ["app", "app", "report", "report", "app"]
        assert records[0].fingerprint == ORDERS_FINGERPRINT

    def test_worker_pool_matches_sequential(self, sample_lines):
        sequential = run_pipeline(sample_lines, workers=1)
        pooled = run_pipeline(sample_lines, workers=4)
        assert sequential.entries.keys() == pooled.entries.keys()
        for key, entry in sequential.entries.items():
            other = pooled.entries[key]
            assert (entry.count, entry.total_time, entry.avg_time, entry.max_time) == \
                (other.count, other.total_time, other.avg_time, other.max_time)

    def test_empty_input(self):
        result = run_pipeline([])
        assert result.entries == {}
        assert result.summary.total_queries == 0
        assert result.summary.avg_time == 0

    def test_malformed_log_aborts(self, sample_lines):
        broken = sample_lines[:4] + ["# User@Host broken\n"] + sample_lines[5:]
        with pytest.raises(FatalLogFormatError):
            run_pipeline(broken)


def test_fingerprint_records_preserves_order(sample_lines):
    records = extract(sample_lines)
    pooled = fingerprint_records(records, workers=3)
    assert [n.record for n in pooled] == records
