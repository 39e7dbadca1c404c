import pytest
import operator

from pipeline import Pipeline
from utils import EmptySequenceError, OptionalResult


class TestReductions:
    """Test reduce, sum, count, average, min and max"""

    def test_reduce_with_identity(self):
        """Test folding heterogeneous values from an identity"""
        result = Pipeline(["a", "bb", "ccc"]).reduce(lambda acc, s: acc + len(s), 0)
        assert result == 6, f"Expected 6, got {result}"

    def test_reduce_with_identity_on_empty(self):
        """Test that the identity is returned for an empty input"""
        assert Pipeline([]).reduce(operator.add, 0) == 0

    def test_reduce_without_identity(self):
        """Test that reduce without identity returns an empty-signal result"""
        assert Pipeline([1, 2, 3, 4]).reduce(operator.add) == OptionalResult.of(10)
        assert Pipeline([]).reduce(operator.add).is_empty, "Empty reduce should be empty"

    def test_reduce_is_left_to_right(self):
        """Test the fold order"""
        result = Pipeline(["a", "b", "c"]).reduce(lambda acc, s: acc + s, "")
        assert result == "abc", f"Unexpected fold order: {result}"

    def test_sum(self):
        """Test sum with and without a start value"""
        assert Pipeline(range(1, 6)).sum() == 15
        assert Pipeline(range(5)).map(lambda x: x * 2).sum() == 20
        assert Pipeline([]).sum() == 0
        assert Pipeline([1, 2]).sum(start=10) == 13

    def test_count(self):
        """Test count with filtering"""
        assert Pipeline(range(20)).filter(lambda x: x % 3 == 0).count() == 7
        assert Pipeline([]).count() == 0

    def test_average(self):
        """Test average and its empty signal"""
        assert Pipeline([1, 2, 3, 4]).average().get() == 2.5
        empty = Pipeline([]).average()
        assert empty.is_empty, "Average of nothing should be empty"
        with pytest.raises(EmptySequenceError):
            empty.get()

    def test_min_max(self):
        """Test min/max with keys and on empty input"""
        words = ["pear", "fig", "banana", "kiwi"]
        assert Pipeline(words).min(key=len).get() == "fig"
        assert Pipeline(words).max(key=len).get() == "banana"
        assert Pipeline([3, 9, 1]).max().get() == 9
        assert Pipeline([]).min().is_empty

    def test_summary_statistics(self):
        """Test summary_statistics with a value function"""
        stats = Pipeline(["a", "bbb", "cc"]).summary_statistics(len)
        assert stats.to_dict() == {"count": 3, "sum": 6, "min": 1, "max": 3, "average": 2.0}

    def test_for_each(self):
        """Test for_each visits every element in order"""
        seen = []
        assert Pipeline([3, 2, 1]).map(lambda x: x * 2).for_each(seen.append) is None
        assert seen == [6, 4, 2], f"Unexpected visits: {seen}"

    def test_match_on_empty(self):
        """Test match results on an empty input"""
        empty = Pipeline([])
        assert not empty.any_match(bool)
        assert empty.all_match(bool)
        assert empty.none_match(bool)
        assert empty.find_first().is_empty


class TestOptionalResult:
    """Test the empty-signal result type"""

    def test_present_value(self):
        """Test accessors on a present value"""
        result = OptionalResult.of(0)
        assert result.is_present and bool(result), "A present falsy value is still present"
        assert result.get() == 0
        assert result.or_else(5) == 0
        assert result.map(lambda x: x + 1).get() == 1

    def test_empty_value(self):
        """Test accessors on an empty result"""
        result = OptionalResult.empty()
        assert result.is_empty and not result
        assert result.or_else(5) == 5
        assert result.or_else_get(lambda: 7) == 7
        assert result.map(lambda x: x + 1).is_empty

    def test_if_present(self):
        """Test if_present only runs for present values"""
        seen = []
        OptionalResult.of("x").if_present(seen.append)
        OptionalResult.empty().if_present(seen.append)
        assert seen == ["x"]


if __name__ == "__main__":
    pytest.main([__file__])
