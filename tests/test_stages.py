import pytest

from pipeline import Pipeline
from stages import Stage, StageKind, check_bounded, split_segments


class TestTransformStages:
    """Test per-element stages"""

    def test_filter_and_map(self):
        """Test filter/map compose in declaration order"""
        result = Pipeline(range(10)).map(lambda x: x * 3).filter(lambda x: x % 2 == 0).to_list()
        assert result == [0, 6, 12, 18, 24], f"Unexpected result: {result}"

    def test_flat_map_preserves_order(self):
        """Test that flat_map expands elements in place"""
        result = Pipeline([[1, 2], [], [3], [4, 5]]).flat_map(lambda xs: xs).to_list()
        assert result == [1, 2, 3, 4, 5], f"Unexpected result: {result}"

    def test_flat_map_with_generators(self):
        """Test flat_map over lazily produced inner sequences"""
        result = Pipeline([1, 2, 3]).flat_map(lambda n: (n for _ in range(n))).to_list()
        assert result == [1, 2, 2, 3, 3, 3], f"Unexpected result: {result}"

    def test_peek_does_not_change_elements(self):
        """Test that peek observes without altering the stream"""
        seen = []
        result = Pipeline([1, 2, 3]).peek(seen.append).map(lambda x: x * 10).to_list()
        assert result == [10, 20, 30], f"Unexpected result: {result}"
        assert seen == [1, 2, 3], f"Unexpected peek log: {seen}"

    def test_take_while(self):
        """Test that take_while stops at the first failing element"""
        result = Pipeline([1, 3, 5, 6, 7, 9]).take_while(lambda x: x % 2 == 1).to_list()
        assert result == [1, 3, 5], f"Unexpected result: {result}"


class TestSorting:
    """Test the sorted() barrier"""

    def test_natural_order(self):
        """Test sorting by natural ordering"""
        assert Pipeline([3, 1, 2]).sorted().to_list() == [1, 2, 3]

    def test_sort_is_stable(self):
        """Test that equal keys keep their encounter order"""
        items = [("a", 1), ("b", 0), ("c", 1), ("d", 0)]
        result = Pipeline(items).sorted(key=lambda p: p[1]).map(lambda p: p[0]).to_list()
        assert result == ["b", "d", "a", "c"], f"Sort must be stable: {result}"

        result = Pipeline(items).sorted(key=lambda p: p[1], reverse=True).map(lambda p: p[0]).to_list()
        assert result == ["a", "c", "b", "d"], f"Reverse sort must be stable: {result}"

    def test_comparator(self):
        """Test sorting with a three-way comparator"""
        def by_length_then_alpha(a, b):
            if len(a) != len(b):
                return len(a) - len(b)
            return (a > b) - (a < b)

        result = Pipeline(["ccc", "a", "bb", "aa", "b"]).sorted(cmp=by_length_then_alpha).to_list()
        assert result == ["a", "b", "aa", "bb", "ccc"], f"Unexpected result: {result}"

    def test_key_and_cmp_are_exclusive(self):
        """Test that passing both key and cmp is rejected"""
        with pytest.raises(ValueError):
            Pipeline([1]).sorted(key=abs, cmp=lambda a, b: a - b)

    def test_sorted_is_idempotent(self):
        """Test that sorting twice equals sorting once"""
        data = [5, -2, 9, 0, 5, 3]
        once = Pipeline(data).sorted(key=abs).to_list()
        twice = Pipeline(data).sorted(key=abs).sorted(key=abs).to_list()
        assert once == twice, f"{once} != {twice}"


class TestDistinct:
    """Test distinct()"""

    def test_keeps_first_occurrence(self):
        """Test first-seen order is kept"""
        result = Pipeline([3, 1, 3, 2, 1]).distinct().to_list()
        assert result == [3, 1, 2], f"Unexpected result: {result}"

    def test_distinct_by_key(self):
        """Test that a key function defines equality"""
        result = Pipeline(["apple", "avocado", "banana", "blueberry", "cherry"]).distinct(lambda s: s[0]).to_list()
        assert result == ["apple", "banana", "cherry"], f"Unexpected result: {result}"

    def test_unhashable_elements(self):
        """Test distinct over elements that cannot be hashed"""
        result = Pipeline([[1], [2], [1], [3], [2]]).distinct().to_list()
        assert result == [[1], [2], [3]], f"Unexpected result: {result}"

    def test_distinct_is_idempotent(self):
        """Test that distinct twice equals distinct once"""
        data = [1, 2, 2, 3, 1, 4]
        assert Pipeline(data).distinct().to_list() == Pipeline(data).distinct().distinct().to_list()


class TestSlicing:
    """Test limit(), skip(), batching and paging"""

    def test_skip(self):
        """Test skip including counts past the end"""
        assert Pipeline(range(5)).skip(2).to_list() == [2, 3, 4]
        assert Pipeline(range(5)).skip(10).to_list() == []
        assert Pipeline(range(5)).skip(0).to_list() == [0, 1, 2, 3, 4]

    def test_limit_larger_than_input(self):
        """Test limit past the end returns everything"""
        assert Pipeline([1, 2]).limit(10).to_list() == [1, 2]

    def test_negative_counts_rejected(self):
        """Test that negative limit/skip counts are rejected"""
        with pytest.raises(ValueError):
            Pipeline([1]).limit(-1)
        with pytest.raises(ValueError):
            Pipeline([1]).skip(-1)

    def test_batch(self):
        """Test batch/chunk grouping"""
        result = Pipeline(range(7)).batch(3).to_list()
        assert result == [(0, 1, 2), (3, 4, 5), (6,)], f"Unexpected result: {result}"
        assert Pipeline(range(4)).chunk(2).to_list() == [(0, 1), (2, 3)]
        with pytest.raises(ValueError):
            Pipeline([1]).batch(0)

    def test_page(self):
        """Test 1-indexed pages"""
        data = list(range(1, 21))
        assert Pipeline(data).page(1, 5).to_list() == [1, 2, 3, 4, 5]
        assert Pipeline(data).page(4, 5).to_list() == [16, 17, 18, 19, 20]
        assert Pipeline(data).page(5, 5).to_list() == []
        with pytest.raises(ValueError):
            Pipeline(data).page(0, 5)

    def test_paginate(self):
        """Test paginate yields lists in one pass"""
        pages = list(Pipeline(range(1, 8)).paginate(3))
        assert pages == [[1, 2, 3], [4, 5, 6], [7]], f"Unexpected pages: {pages}"


class TestChainAnalysis:
    """Test stage classification helpers"""

    def test_check_bounded(self):
        """Test that a bounding stage must come before any sort"""
        limit = Stage(StageKind.LIMIT, count=3)
        sort = Stage(StageKind.SORT)
        mapping = Stage(StageKind.MAP, fn=str)
        assert check_bounded([mapping, limit, sort])
        assert not check_bounded([mapping, sort, limit])
        assert not check_bounded([mapping])

    def test_split_segments(self):
        """Test that stateful stages split the chain"""
        f = Stage(StageKind.FILTER, fn=bool)
        m = Stage(StageKind.MAP, fn=str)
        d = Stage(StageKind.DISTINCT)
        s = Stage(StageKind.SORT)
        segments = split_segments([f, m, d, s, m])
        assert segments == [[f, m], [d], [s], [m]], f"Unexpected segments: {segments}"


if __name__ == "__main__":
    pytest.main([__file__])
