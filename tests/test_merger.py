"""
Tests for cross-batch merge and ranking.
"""

from boe_monitor.analysis.merger import empty_result, merge
from boe_monitor.core.models import BatchError, BatchResult, BatchState, Match


def _match(title, score):
    return Match(title=title, notification_title=title, relevance_score=score)


def _succeeded(index, *matches):
    return BatchResult(batch_index=index, item_count=2, state=BatchState.SUCCEEDED,
                       matches=list(matches))


def _failed(index, message="timeout"):
    return BatchResult(batch_index=index, item_count=2, state=BatchState.FAILED,
                       error=BatchError(kind="BACKEND_ERROR", message=message))


class TestMerge:
    """Test suite for merge()"""

    def test_ranked_by_relevance(self):
        results = [
            _succeeded(0, _match("a", 0.3), _match("b", 0.9)),
            _succeeded(1, _match("c", 0.6)),
        ]

        merged = merge("vivienda", results, model_used="gpt-4o-mini", items_processed=4)

        assert [m.title for m in merged.matches] == ["b", "c", "a"]
        assert merged.metadata.match_count == 3
        assert merged.metadata.max_relevance == 0.9
        assert merged.metadata.items_processed == 4
        assert merged.metadata.model_used == "gpt-4o-mini"
        assert merged.metadata.status == "success"

    def test_independent_of_arrival_order(self):
        """Any permutation of batch results merges to the same ranking"""
        results = [
            _succeeded(0, _match("a", 0.5), _match("b", 0.5)),
            _succeeded(1, _match("c", 0.5)),
            _succeeded(2, _match("d", 0.8)),
        ]

        forward = merge("q", results, model_used="m")
        backward = merge("q", list(reversed(results)), model_used="m")

        assert forward.matches == backward.matches

    def test_ties_keep_batch_order(self):
        """Equal scores keep batch order, then in-batch order"""
        results = [
            _succeeded(1, _match("c", 0.5)),
            _succeeded(0, _match("a", 0.5), _match("b", 0.5)),
        ]

        merged = merge("q", results, model_used="m")

        assert [m.title for m in merged.matches] == ["a", "b", "c"]

    def test_match_count_equals_sum_of_batches(self):
        results = [_succeeded(i, _match(str(i), i / 10)) for i in range(4)]

        merged = merge("q", results, model_used="m")

        assert merged.metadata.match_count == sum(len(r.matches) for r in results)

    def test_partial_failure(self):
        merged = merge("q", [_succeeded(0, _match("a", 0.7)), _failed(1)], model_used="m")

        assert merged.metadata.status == "partial"
        assert merged.metadata.failed_batch_count == 1
        assert merged.metadata.batch_count == 2
        assert merged.metadata.error == {
            "code": "BACKEND_ERROR", "message": "timeout", "batch_index": 1
        }
        assert len(merged.matches) == 1

    def test_all_batches_failed(self):
        merged = merge("q", [_failed(0, "first"), _failed(1, "second")], model_used="m")

        assert merged.metadata.status == "error"
        assert merged.metadata.error["message"] == "first"
        assert merged.matches == []
        assert merged.metadata.max_relevance == 0.0

    def test_no_batches(self):
        """Empty input merges to a successful zero-match result"""
        merged = merge("q", [], model_used="m")

        assert merged.matches == []
        assert merged.metadata.match_count == 0
        assert merged.metadata.max_relevance == 0.0
        assert merged.metadata.status == "success"


class TestEmptyResult:
    """Test suite for empty_result()"""

    def test_no_content(self):
        result = empty_result("q", "m", status="no_content", note="No BOE published for 2024-01-14")

        assert result.matches == []
        assert result.metadata.match_count == 0
        assert result.metadata.max_relevance == 0.0
        assert result.metadata.status == "no_content"
        assert result.metadata.note == "No BOE published for 2024-01-14"

    def test_error_descriptor(self):
        error = {"code": "FETCH_ERROR", "message": "down", "details": {}}
        result = empty_result("q", "m", status="error", error=error)

        assert result.metadata.error == error
