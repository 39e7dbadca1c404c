import pytest
import json

from demos import (
    CATEGORIES,
    DEMO_REGISTRY,
    DemoNotFoundError,
    STUDENT_STATISTICS,
    demo,
    gpa_level,
    list_demos,
    run_demo
)
from pipeline import Pipeline


class TestCatalogue:
    """Test demonstration registration and lookup"""

    def test_every_category_has_demos(self):
        """Test that each category is populated"""
        for category in CATEGORIES:
            assert list_demos(category), f"No demonstrations in {category}"

    def test_unknown_demo(self):
        """Test lookup of an unregistered name"""
        with pytest.raises(DemoNotFoundError):
            run_demo("nope")

    def test_unknown_category_rejected(self):
        """Test that registration validates the category"""
        with pytest.raises(ValueError):
            demo("x", "expert", "bad category")

    @pytest.mark.parametrize("name", sorted(DEMO_REGISTRY))
    def test_demo_output_is_json_ready(self, name):
        """Test that every demonstration runs and serializes"""
        result = run_demo(name)
        assert isinstance(result, dict), f"{name} should return a dict"
        json.dumps(result)


class TestBasicDemos:
    """Test basic demonstration outputs"""

    def test_sorting(self):
        result = run_demo("sorting")
        assert result["by_age"][0] == "Qian Yi (18)"
        assert result["by_gpa_desc"][0] == "Wang Wu (4.2)"
        assert result["by_major_then_age"][0] == "Chemistry: Wu Jiu, 19"

    def test_find_and_match(self):
        result = run_demo("find_and_match")
        assert result == {
            "first_gpa_above_4": "Wang Wu",
            "has_computer_science": True,
            "all_gpa_above_3": True,
            "none_gpa_below_2": True,
        }


class TestIntermediateDemos:
    """Test intermediate demonstration outputs"""

    def test_aggregation(self):
        result = run_demo("aggregation")
        assert result["total_students"] == 10
        assert result["average_age"] == pytest.approx(21.8)
        assert result["top_student"] == "Wang Wu"
        assert result["youngest_student"] == "Qian Yi"

    def test_reduction(self):
        result = run_demo("reduction")
        assert result["max_gpa"] == 4.2
        assert result["high_gpa_count"] == 6
        assert result["all_names"].startswith("Zhang San, Li Si")

    def test_distinct_and_limit(self):
        result = run_demo("distinct_and_limit")
        assert result["distinct_sorted"] == list(range(1, 10))
        assert result["first_5"] == [1, 2, 3, 2, 4]
        assert result["page_2_of_size_3"] == [4, 5, 6]
        assert result["pages_of_5"] == [[1, 2, 3, 2, 4], [3, 5, 1, 6, 4], [7, 8, 5, 9]]

    def test_parallel_demo(self):
        result = run_demo("parallel", workers=3)
        assert result["results_match"] is True
        assert result["even_count_parallel"] == 100000


class TestAdvancedDemos:
    """Test advanced demonstration outputs"""

    def test_custom_collector_modes_agree(self, students):
        sequential = Pipeline(students).collect(STUDENT_STATISTICS)
        parallel = Pipeline(students).parallel(3).collect(STUDENT_STATISTICS)
        assert (sequential.total_count, sequential.total_age) == (parallel.total_count, parallel.total_age) == (10, 218)
        assert run_demo("custom_collector", workers=2)["average_age"] == 21.8

    def test_infinite_sources(self):
        result = run_demo("infinite_sources")
        assert result["powers_of_two"] == [1, 2, 4, 8, 16, 32, 64, 128]
        assert result["fibonacci"] == [0, 1, 1, 2, 3, 5, 8, 13, 21, 34]
        assert result["greetings"] == ["Hello"] * 3
        assert result["evens_up_to_100"] == 50
        assert len(result["random_ints"]) == 5

    def test_peek_and_flagging(self):
        result = run_demo("peek_and_flagging")
        assert result["trace"][:2] == ["filtered: Zhang San", "mapped: Zhang San"]
        assert result["flagged_excellent"] == ["Wang Wu*"]
        assert result["originals_untouched"] is True

    def test_exception_handling(self):
        result = run_demo("exception_handling")
        assert result["safe_parsed"] == [10, 20, 30, 40]
        assert result["with_defaults"] == [10, 20, -1, 30, -1, 40]

    def test_advanced_collecting(self, students):
        result = run_demo("advanced_collecting")
        assert result["gpa_distribution"] == {
            "good (3.5-3.9)": 5,
            "excellent (>=4.0)": 2,
            "fair (3.0-3.4)": 3,
        }
        assert result["high_gpa"] == "Zhang San, Li Si, Wang Wu, Zhao Liu, Zhou Ba, Qian Yi"
        assert gpa_level(students[2]) == "excellent (>=4.0)"


class TestComprehensiveDemos:
    """Test comprehensive demonstration outputs"""

    def test_grade_management(self):
        result = run_demo("grade_management", workers=2)
        assert result["top_by_major"] == {
            "Computer Science": "Wang Wu",
            "Mathematics": "Li Si",
            "Physics": "Zhao Liu",
            "Chemistry": "Wu Jiu",
        }
        assert result["graduate_candidates"] == ["Wang Wu", "Zhao Liu", "Zhou Ba", "Li Si"]
        assert result["gender_count"] == {"M": 5, "F": 5}

    def test_course_analysis(self):
        result = run_demo("course_analysis")
        assert result["high_credit_count"] == 8
        assert result["courses_by_instructor"]["Prof. Zhang"] == 2
        assert result["excellent_courses"][0] == "Machine Learning (92)"

    def test_score_updates(self):
        result = run_demo("score_updates")
        assert result["applied_updates"] == {"Zhang San": 4.1, "Sun Qi": 3.5, "Chen Er": 3.6}
        assert result["rankings"][:2] == ["Wang Wu: 4.2", "Zhang San: 4.1"]
        assert result["excellent_count"] == 3


if __name__ == "__main__":
    pytest.main([__file__])
