import pytest
from itertools import islice

from models import ExecutionState
from pipeline import Pipeline


class TestLazyEvaluation:
    """Test that stages only run when a terminal operation pulls elements"""

    def test_deferred_execution(self):
        """Test that building a chain evaluates nothing"""
        call_count = 0

        def track_calls(x):
            nonlocal call_count
            call_count += 1
            return x * 2

        pipeline = Pipeline(range(10)).map(track_calls).filter(lambda x: x > 4)
        assert call_count == 0, "Operations should not execute during definition"
        assert pipeline.state == ExecutionState.BUILT, "No run should have happened yet"

        result = pipeline.limit(3).to_list()
        assert result == [6, 8, 10], f"Unexpected result: {result}"
        assert call_count == 6, f"Expected exactly 6 calls, got {call_count}"

    def test_filter_map_example(self):
        """Test filter even then square"""
        result = Pipeline([1, 2, 3, 4, 5, 6]).filter(lambda x: x % 2 == 0).map(lambda x: x * x).to_list()
        assert result == [4, 16, 36], f"Unexpected result: {result}"

    def test_element_wise_traversal(self):
        """Test that each element passes through the whole chain before the next is pulled"""
        events = []

        def keep_odd(x):
            events.append(("filter", x))
            return x % 2 == 1

        def double(x):
            events.append(("map", x))
            return x * 2

        Pipeline([1, 2, 3]).filter(keep_odd).map(double).to_list()
        assert events == [("filter", 1), ("map", 1), ("filter", 2), ("filter", 3), ("map", 3)], \
            f"Unexpected traversal order: {events}"

    def test_limit_zero_evaluates_nothing(self):
        """Test that limit(0) pulls no element through earlier stages"""
        calls = []
        result = Pipeline([1, 2, 3]).map(lambda x: calls.append(x) or x).limit(0).to_list()
        assert result == [], f"Expected empty result, got {result}"
        assert calls == [], f"No element should be mapped, got {calls}"

    def test_limit_stops_pulling_upstream(self):
        """Test that limit(n) stops right after the n-th element"""
        pulled = []

        def source():
            for i in range(1000):
                pulled.append(i)
                yield i

        result = Pipeline(source()).limit(3).to_list()
        assert result == [0, 1, 2], f"Unexpected result: {result}"
        assert pulled == [0, 1, 2], f"Source over-pulled: {pulled}"

    def test_find_first_short_circuits(self):
        """Test that find_first stops after the first element reaches the terminal"""
        call_count = 0

        def track(x):
            nonlocal call_count
            call_count += 1
            return x

        result = Pipeline(range(100)).map(track).filter(lambda x: x >= 5).find_first()
        assert result.get() == 5, f"Unexpected result: {result}"
        assert call_count == 6, f"Expected 6 calls, got {call_count}"

    def test_match_operations_short_circuit(self):
        """Test that any_match/all_match stop as soon as the answer is known"""
        seen = []
        pipeline = Pipeline(range(100)).peek(seen.append)

        assert pipeline.any_match(lambda x: x == 3), "3 is in the range"
        assert seen == [0, 1, 2, 3], f"any_match over-pulled: {seen}"

        seen.clear()
        assert not pipeline.all_match(lambda x: x < 2), "Not every element is below 2"
        assert seen == [0, 1, 2], f"all_match over-pulled: {seen}"

    def test_sorted_is_a_barrier(self):
        """Test that sorted() consumes its whole upstream before emitting"""
        seen = []
        result = Pipeline([5, 3, 9, 1]).peek(seen.append).sorted().limit(1).to_list()
        assert result == [1], f"Unexpected result: {result}"
        assert seen == [5, 3, 9, 1], f"sorted() must see every element: {seen}"

    def test_partial_iteration_stays_lazy(self):
        """Test that iterating a pipeline computes only what is consumed"""
        mapped = []
        pipeline = Pipeline(range(1, 30)).map(lambda x: mapped.append(x) or x * x)

        first_three = list(islice(pipeline, 3))
        assert first_three == [1, 4, 9], f"Unexpected result: {first_three}"
        assert mapped == [1, 2, 3], f"Only consumed elements should be computed: {mapped}"

    def test_multiple_consumption(self):
        """Test that pipelines over collections can run repeatedly"""
        pipeline = Pipeline(range(5)).map(lambda x: x * 2)
        result1 = pipeline.to_list()
        result2 = pipeline.to_list()
        assert result1 == result2 == [0, 2, 4, 6, 8], f"Unexpected results: {result1}, {result2}"

    def test_derived_pipelines_do_not_modify_the_base(self):
        """Test that adding a stage returns a new pipeline"""
        base = Pipeline([1, 2, 3])
        derived = base.filter(lambda x: x > 1).map(str)

        assert base.stages == (), "Base pipeline must keep its empty chain"
        assert len(derived.stages) == 2, f"Expected 2 stages, got {len(derived.stages)}"
        assert base.to_list() == [1, 2, 3], "Base pipeline output must be unchanged"
        assert derived.to_list() == ["2", "3"], "Derived pipeline applies its stages"

    def test_state_transitions(self):
        """Test BUILT -> DONE on a successful run"""
        pipeline = Pipeline([1, 2, 3]).map(lambda x: x + 1)
        assert pipeline.state == ExecutionState.BUILT
        assert pipeline.last_report is None

        pipeline.count()
        assert pipeline.state == ExecutionState.DONE, f"Unexpected state: {pipeline.state}"
        assert pipeline.last_report.operation == "count"
        assert pipeline.last_report.elapsed_ms is not None

    def test_iteration_finishes_run_when_closed_early(self):
        """Test that abandoning an iterator still ends the run"""
        pipeline = Pipeline(range(10))
        iterator = iter(pipeline)
        assert next(iterator) == 0
        iterator.close()
        assert pipeline.state == ExecutionState.DONE, f"Unexpected state: {pipeline.state}"

    def test_repr_describes_chain(self):
        """Test the debugging representation"""
        text = repr(Pipeline([1, 2]).filter(bool).limit(1))
        assert "filter" in text and "limit(1)" in text, f"Unexpected repr: {text}"


if __name__ == "__main__":
    pytest.main([__file__])
