"""
Demonstration catalogue.

Each demonstration builds pipelines over small student/course datasets
and returns JSON-ready data. Demonstrations register themselves in
DEMO_REGISTRY through the ``demo`` decorator; the HTTP surface and the
command-line launcher only look them up there and run them.
"""

import logging
import math
import random
import time
from typing import Any, Callable, Dict, List, Optional

import collectors
from collectors import Collector
from models import Course, DemoInfo, Student
from pipeline import Pipeline
from utils import elapsed_ms

logger = logging.getLogger(__name__)

# Global demonstration registry: name -> {"info": DemoInfo, "run": callable}
DEMO_REGISTRY: Dict[str, Dict[str, Any]] = {}

CATEGORIES = ("basic", "intermediate", "advanced", "comprehensive")

COMPUTER_SCIENCE = "Computer Science"


def demo(name: str, category: str, description: str):
    """Register a demonstration function under ``name``."""
    if category not in CATEGORIES:
        raise ValueError(f"Unknown demo category: {category}")

    def decorator(func: Callable[..., Dict[str, Any]]):
        DEMO_REGISTRY[name] = {
            "info": DemoInfo(name=name, category=category, description=description),
            "run": func
        }
        return func
    return decorator


def list_demos(category: Optional[str] = None) -> List[DemoInfo]:
    return (
        Pipeline(DEMO_REGISTRY.values())
        .map(lambda entry: entry["info"])
        .filter(lambda info: category is None or info.category == category)
        .to_list()
    )


class DemoNotFoundError(Exception):
    """Raised when a demonstration name is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown demonstration: {name}")


def get_demo_info(name: str) -> DemoInfo:
    if name not in DEMO_REGISTRY:
        raise DemoNotFoundError(name)
    return DEMO_REGISTRY[name]["info"]


def run_demo(name: str, workers: Optional[int] = None) -> Dict[str, Any]:
    """Run one demonstration by name."""
    if name not in DEMO_REGISTRY:
        raise DemoNotFoundError(name)
    entry = DEMO_REGISTRY[name]
    logger.info(f"Running demonstration {name!r} (workers={workers})")
    return entry["run"](workers=workers)


# ---------- Sample data ----------

def create_sample_students() -> List[Student]:
    return [
        Student(name="Zhang San", age=20, major=COMPUTER_SCIENCE, gpa=3.8, gender="M"),
        Student(name="Li Si", age=22, major="Mathematics", gpa=3.6, gender="F"),
        Student(name="Wang Wu", age=21, major=COMPUTER_SCIENCE, gpa=4.2, gender="M"),
        Student(name="Zhao Liu", age=23, major="Physics", gpa=3.9, gender="F"),
        Student(name="Sun Qi", age=20, major="Mathematics", gpa=3.2, gender="M"),
        Student(name="Zhou Ba", age=24, major=COMPUTER_SCIENCE, gpa=3.7, gender="F"),
        Student(name="Wu Jiu", age=19, major="Chemistry", gpa=3.5, gender="M"),
        Student(name="Zheng Shi", age=25, major="Physics", gpa=3.1, gender="F"),
        Student(name="Qian Yi", age=18, major=COMPUTER_SCIENCE, gpa=4.0, gender="M"),
        Student(name="Chen Er", age=26, major="Mathematics", gpa=3.4, gender="F"),
    ]


def create_sample_courses() -> List[Course]:
    return [
        Course(course_name="Data Structures and Algorithms", instructor="Prof. Zhang", credit=4, score=88, category="Major"),
        Course(course_name="Advanced Mathematics", instructor="Prof. Li", credit=5, score=82, category="Foundation"),
        Course(course_name="Linear Algebra", instructor="Prof. Wang", credit=3, score=85, category="Foundation"),
        Course(course_name="Probability Theory", instructor="Prof. Zhao", credit=4, score=79, category="Foundation"),
        Course(course_name="Operating Systems", instructor="Prof. Sun", credit=4, score=91, category="Major"),
        Course(course_name="Database Systems", instructor="Prof. Zhou", credit=3, score=87, category="Major"),
        Course(course_name="Computer Networks", instructor="Prof. Wu", credit=4, score=83, category="Major"),
        Course(course_name="Software Engineering", instructor="Prof. Zheng", credit=3, score=86, category="Major"),
        Course(course_name="Artificial Intelligence", instructor="Prof. Qian", credit=4, score=89, category="Major"),
        Course(course_name="Machine Learning", instructor="Prof. Chen", credit=4, score=92, category="Major"),
        Course(course_name="Compiler Construction", instructor="Prof. Zhang", credit=3, score=84, category="Major"),
        Course(course_name="Discrete Mathematics", instructor="Prof. Yang", credit=4, score=80, category="Foundation"),
    ]


def gpa_level(student: Student) -> str:
    if student.gpa >= 4.0:
        return "excellent (>=4.0)"
    if student.gpa >= 3.5:
        return "good (3.5-3.9)"
    if student.gpa >= 3.0:
        return "fair (3.0-3.4)"
    return "pass (<3.0)"


def _names(students) -> List[str]:
    return [s.name for s in students]


def _maybe(result) -> Any:
    return result.or_else(None)


# ---------- Basic ----------

@demo("creation", "basic", "Building pipelines from collections, literals and ranges")
def demo_creation(workers=None):
    names = ["Alice", "Bob", "Charlie", "David"]
    return {
        "from_list": Pipeline(names).to_list(),
        "from_literals": Pipeline.of("Java", "Python", "JavaScript", "C++").to_list(),
        "from_range": Pipeline.range(1, 6).to_list(),
    }


@demo("filtering", "basic", "filter() with single and combined predicates")
def demo_filtering(workers=None):
    students = Pipeline(create_sample_students())
    return {
        "older_than_20": students.filter(lambda s: s.age > 20).map(lambda s: s.name).to_list(),
        "computer_science": students.filter(lambda s: s.major == COMPUTER_SCIENCE)
                                    .map(lambda s: s.name).to_list(),
        "cs_with_gpa_above_3_5": students.filter(lambda s: s.major == COMPUTER_SCIENCE and s.gpa > 3.5)
                                         .map(lambda s: s.name).to_list(),
    }


@demo("mapping", "basic", "map() and flat_map() transformations")
def demo_mapping(workers=None):
    students = Pipeline(create_sample_students())
    return {
        "names": students.map(lambda s: s.name).to_list(),
        "squared_ages": students.map(lambda s: s.age * s.age).to_list(),
        "majors": students.flat_map(lambda s: [s.major]).distinct().to_list(),
    }


@demo("sorting", "basic", "sorted() by key, descending, and with a comparator")
def demo_sorting(workers=None):
    students = Pipeline(create_sample_students())

    def by_major_then_age(a: Student, b: Student) -> int:
        if a.major != b.major:
            return -1 if a.major < b.major else 1
        return a.age - b.age

    return {
        "by_age": students.sorted(key=lambda s: s.age).map(lambda s: f"{s.name} ({s.age})").to_list(),
        "by_gpa_desc": students.sorted(key=lambda s: s.gpa, reverse=True)
                               .map(lambda s: f"{s.name} ({s.gpa})").to_list(),
        "by_major_then_age": students.sorted(cmp=by_major_then_age)
                                     .map(lambda s: f"{s.major}: {s.name}, {s.age}").to_list(),
    }


@demo("find_and_match", "basic", "find_first() and any/all/none_match()")
def demo_find_and_match(workers=None):
    students = Pipeline(create_sample_students())
    return {
        "first_gpa_above_4": students.filter(lambda s: s.gpa > 4.0).map(lambda s: s.name)
                                     .find_first().or_else("not found"),
        "has_computer_science": students.any_match(lambda s: s.major == COMPUTER_SCIENCE),
        "all_gpa_above_3": students.all_match(lambda s: s.gpa > 3.0),
        "none_gpa_below_2": students.none_match(lambda s: s.gpa < 2.0),
    }


@demo("collecting", "basic", "Collecting into lists, sets and summary statistics")
def demo_collecting(workers=None):
    students = Pipeline(create_sample_students())
    ages = Pipeline([20, 22, 20, 23, 22, 24])
    return {
        "names": students.map(lambda s: s.name).to_list(),
        "unique_ages": sorted(ages.to_set()),
        "age_statistics": students.summary_statistics(lambda s: s.age).to_dict(),
    }


# ---------- Intermediate ----------

@demo("aggregation", "intermediate", "count, sum, average, min and max")
def demo_aggregation(workers=None):
    students = Pipeline(create_sample_students())
    return {
        "total_students": students.count(),
        "total_gpa": round(students.map(lambda s: s.gpa).sum(), 2),
        "average_age": students.map(lambda s: s.age).average().or_else(0.0),
        "top_student": _maybe(students.max(key=lambda s: s.gpa).map(lambda s: s.name)),
        "youngest_student": _maybe(students.min(key=lambda s: s.age).map(lambda s: s.name)),
    }


@demo("grouping", "intermediate", "group_by() with nested and downstream collectors")
def demo_grouping(workers=None):
    students = Pipeline(create_sample_students())
    by_major = students.group_by(lambda s: s.major, collectors.mapping(lambda s: s.name, collectors.to_list()))
    avg_gpa_by_gender = students.group_by(lambda s: s.gender, collectors.averaging(lambda s: s.gpa))
    by_major_and_gender = students.group_by(
        lambda s: s.major,
        collectors.grouping_by(lambda s: s.gender, collectors.mapping(lambda s: s.name, collectors.to_list()))
    )
    return {
        "by_major": by_major,
        "average_gpa_by_gender": {k: round(v, 2) for k, v in avg_gpa_by_gender.items()},
        "by_major_and_gender": by_major_and_gender,
    }


@demo("reduction", "intermediate", "reduce() with and without identity")
def demo_reduction(workers=None):
    gpas = Pipeline(create_sample_students()).map(lambda s: s.gpa)
    names = Pipeline(create_sample_students()).map(lambda s: s.name)
    return {
        "total_gpa": round(gpas.reduce(lambda a, b: a + b).or_else(0.0), 2),
        "total_gpa_with_identity": round(gpas.reduce(lambda a, b: a + b, 0.0), 2),
        "max_gpa": _maybe(gpas.reduce(max)),
        "all_names": names.reduce(lambda a, b: b if not a else f"{a}, {b}", ""),
        "high_gpa_count": gpas.map(lambda g: 1 if g > 3.5 else 0).reduce(lambda a, b: a + b, 0),
    }


@demo("optional_results", "intermediate", "Empty-signal results from find_first()")
def demo_optional_results(workers=None):
    students = Pipeline(create_sample_students())

    def named(name):
        return students.filter(lambda s: s.name == name).find_first()

    return {
        "wang_wu_found": named("Wang Wu").is_present,
        "missing_or_default": named("Nobody").map(lambda s: s.name).or_else("default"),
        "li_si_or_else_get": named("Li Si").map(lambda s: s.name).or_else_get(lambda: "default"),
        "major_of_wang_wu": named("Wang Wu").map(lambda s: s.major).or_else("unknown major"),
        "first_cs_major": _maybe(students.filter(lambda s: s.major == COMPUTER_SCIENCE)
                                         .map(lambda s: s.major).find_first()),
    }


@demo("parallel", "intermediate", "Sequential vs parallel execution over a large range")
def demo_parallel(workers=None, size: int = 200_000):
    numbers = Pipeline.range(1, size + 1)
    started = time.perf_counter()
    sequential = numbers.filter(lambda n: n % 2 == 0).count()
    sequential_ms = elapsed_ms(started)

    started = time.perf_counter()
    parallel = numbers.parallel(workers).filter(lambda n: n % 2 == 0).count()
    parallel_ms = elapsed_ms(started)

    letters = Pipeline.of("A", "B", "C", "D", "E", "F", "G", "H")
    return {
        "even_count_sequential": sequential,
        "even_count_parallel": parallel,
        "results_match": sequential == parallel,
        "sequential_ms": round(sequential_ms, 3),
        "parallel_ms": round(parallel_ms, 3),
        "ordered_letters_parallel": letters.parallel(workers).map(str.lower).to_list(),
    }


@demo("distinct_and_limit", "intermediate", "distinct(), limit(), skip() and paging")
def demo_distinct_and_limit(workers=None):
    numbers = Pipeline([1, 2, 3, 2, 4, 3, 5, 1, 6, 4, 7, 8, 5, 9])
    return {
        "distinct_sorted": numbers.distinct().sorted().to_list(),
        "first_5": numbers.limit(5).to_list(),
        "skip_3": numbers.skip(3).to_list(),
        "page_2_of_size_3": numbers.distinct().page(2, 3).to_list(),
        "pages_of_5": list(numbers.paginate(5)),
    }


# ---------- Advanced ----------

class StudentStatistics:
    """User-defined accumulator: running totals over students."""

    def __init__(self):
        self.total_count = 0
        self.total_age = 0
        self.total_gpa = 0.0

    def accept(self, student: Student) -> None:
        self.total_count += 1
        self.total_age += student.age
        self.total_gpa += student.gpa

    def combine(self, other: "StudentStatistics") -> "StudentStatistics":
        self.total_count += other.total_count
        self.total_age += other.total_age
        self.total_gpa += other.total_gpa
        return self

    @property
    def average_age(self) -> float:
        return self.total_age / self.total_count if self.total_count else 0.0

    @property
    def average_gpa(self) -> float:
        return self.total_gpa / self.total_count if self.total_count else 0.0


STUDENT_STATISTICS = Collector.of(StudentStatistics, StudentStatistics.accept, StudentStatistics.combine)


@demo("custom_collector", "advanced", "A user-defined collector and joining()")
def demo_custom_collector(workers=None):
    students = Pipeline(create_sample_students())
    if workers:
        students = students.parallel(workers)
    stats = students.collect(STUDENT_STATISTICS)
    return {
        "total_count": stats.total_count,
        "average_age": round(stats.average_age, 2),
        "average_gpa": round(stats.average_gpa, 2),
        "major_list": students.map(lambda s: s.major).distinct().joining(" | ", "Majors: [", "]"),
    }


@demo("peek_and_flagging", "advanced", "peek() for tracing; flagging via copy-then-replace instead of mutation")
def demo_peek_and_flagging(workers=None):
    students = Pipeline(create_sample_students())
    trace: List[str] = []
    names = (
        students
        .filter(lambda s: s.gpa > 3.5)
        .peek(lambda s: trace.append(f"filtered: {s.name}"))
        .map(lambda s: s.name)
        .peek(lambda name: trace.append(f"mapped: {name}"))
        .to_list()
    )
    flagged = (
        students
        .map(lambda s: s.model_copy(update={"name": s.name + "*"}) if s.gpa > 4.0 else s)
        .filter(lambda s: s.name.endswith("*"))
        .map(lambda s: s.name)
        .to_list()
    )
    return {
        "names": names,
        "trace": trace,
        "flagged_excellent": flagged,
        "originals_untouched": students.none_match(lambda s: s.name.endswith("*")),
    }


@demo("exception_handling", "advanced", "Safe parsing inside map() stages")
def demo_exception_handling(workers=None):
    raw = ["10", "20", "invalid", "30", None, "40"]

    def safe_int(text) -> int:
        try:
            return int(text)
        except (TypeError, ValueError):
            return -1

    parsed = Pipeline(raw).map(safe_int).to_list()
    return {
        "safe_parsed": Pipeline(raw).filter(lambda s: s is not None).map(safe_int)
                                    .filter(lambda n: n != -1).to_list(),
        "with_defaults": parsed,
        "valid": Pipeline(parsed).filter(lambda n: n > 0).to_list(),
    }


@demo("infinite_sources", "advanced", "iterate() and generate() bounded by limit() or take_while()")
def demo_infinite_sources(workers=None):
    rng = random.Random(42)
    return {
        "random_ints": Pipeline.generate(lambda: rng.randint(1, 99)).limit(5).to_list(),
        "powers_of_two": Pipeline.iterate(1, lambda n: n * 2).limit(8).to_list(),
        "greetings": Pipeline.generate(lambda: "Hello").limit(3).to_list(),
        "fibonacci": Pipeline.iterate((0, 1), lambda f: (f[1], f[0] + f[1]))
                             .map(lambda f: f[0]).limit(10).to_list(),
        "evens_up_to_100": Pipeline.iterate(2, lambda n: n + 2).take_while(lambda n: n <= 100).count(),
    }


@demo("advanced_collecting", "advanced", "partition_by(), counting distributions and averages by group")
def demo_advanced_collecting(workers=None):
    students = Pipeline(create_sample_students())
    parts = students.partition_by(lambda s: s.gpa > 3.5, collectors.mapping(lambda s: s.name, collectors.joining(", ")))
    averages = students.group_by(lambda s: s.major, collectors.averaging(lambda s: s.gpa))
    return {
        "high_gpa": parts[True],
        "low_gpa": parts[False],
        "gpa_distribution": students.group_by(gpa_level, collectors.counting()),
        "average_gpa_by_major": {k: round(v, 2) for k, v in averages.items()},
    }


@demo("chaining", "advanced", "Long chains, flat_map over nested lists, ordered grouping")
def demo_chaining(workers=None):
    students = Pipeline(create_sample_students())

    def describe(s: Student) -> str:
        level = "excellent" if s.gpa >= 4.0 else "good" if s.gpa >= 3.7 else "solid"
        return f"{s.name} ({s.major}, {level})"

    nested = [["A", "B", "C"], ["D", "E", "F"], ["G", "H"]]
    return {
        "top_descriptions": students.filter(lambda s: s.gpa > 3.5).map(describe).sorted().limit(5).to_list(),
        "flattened": Pipeline(nested).flat_map(lambda xs: xs).sorted().joining(", ", "[", "]"),
        "by_major_sorted_by_gpa": (
            students
            .filter(lambda s: s.age >= 20)
            .sorted(key=lambda s: s.gpa, reverse=True)
            .group_by(lambda s: s.major, collectors.mapping(lambda s: f"{s.name}({s.gpa})", collectors.to_list()))
        ),
    }


# ---------- Comprehensive ----------

@demo("grade_management", "comprehensive", "Per-major top students and summaries")
def demo_grade_management(workers=None):
    students = Pipeline(create_sample_students())
    if workers:
        students = students.parallel(workers)
    top_by_major = students.group_by(
        lambda s: s.major,
        collectors.collecting_and_then(collectors.max_by(lambda s: s.gpa), lambda best: _maybe(best.map(lambda s: s.name)))
    )
    summaries = students.group_by(
        lambda s: s.major,
        collectors.collecting_and_then(
            collectors.to_list(),
            lambda group: {
                "count": len(group),
                "average_gpa": round(Pipeline(group).map(lambda s: s.gpa).average().or_else(0.0), 2),
                "average_age": round(Pipeline(group).map(lambda s: s.age).average().or_else(0.0), 2),
            }
        )
    )
    return {
        "top_by_major": top_by_major,
        "major_summaries": summaries,
        "graduate_candidates": students.filter(lambda s: s.gpa >= 3.5 and s.age >= 21)
                                       .sorted(key=lambda s: s.gpa, reverse=True)
                                       .map(lambda s: s.name).to_list(),
        "gender_count": students.group_by(lambda s: s.gender, collectors.counting()),
    }


@demo("course_analysis", "comprehensive", "Course score and credit analysis")
def demo_course_analysis(workers=None):
    courses = Pipeline(create_sample_courses())
    averages = courses.group_by(lambda c: c.category, collectors.averaging(lambda c: c.score))
    return {
        "average_score_by_category": {k: round(v, 2) for k, v in averages.items()},
        "courses_by_instructor": courses.group_by(lambda c: c.instructor, collectors.counting()),
        "high_credit_count": courses.filter(lambda c: c.credit >= 4).count(),
        "high_credit_average_score": round(
            courses.filter(lambda c: c.credit >= 4).map(lambda c: c.score).average().or_else(0.0), 2
        ),
        "excellent_courses": courses.filter(lambda c: c.score >= 88)
                                    .sorted(key=lambda c: c.score, reverse=True)
                                    .map(lambda c: f"{c.course_name} ({c.score:g})").to_list(),
    }


@demo("statistics", "comprehensive", "Summary statistics and distributions")
def demo_statistics(workers=None):
    students = Pipeline(create_sample_students())
    gpa_stats = students.summary_statistics(lambda s: s.gpa)
    gpa_variance = students.map(lambda s: (s.gpa - gpa_stats.average) ** 2).average().or_else(0.0)
    return {
        "age": students.summary_statistics(lambda s: s.age).to_dict(),
        "gpa": {k: round(v, 3) if isinstance(v, float) else v for k, v in gpa_stats.to_dict().items()},
        "gpa_std_dev": round(math.sqrt(gpa_variance), 3),
        "major_distribution": students.group_by(lambda s: s.major, collectors.counting()),
        "grade_distribution": students.group_by(gpa_level, collectors.counting()),
    }


@demo("score_updates", "comprehensive", "Merging updates with to_dict() and re-ranking copies")
def demo_score_updates(workers=None):
    students = create_sample_students()
    updates = [("Zhang San", 3.9), ("Sun Qi", 3.5), ("Zhang San", 4.1), ("Chen Er", 3.6)]
    # later updates for the same student win
    latest = Pipeline(updates).to_dict(lambda u: u[0], lambda u: u[1], merge_fn=lambda old, new: new)
    updated = Pipeline(students).map(
        lambda s: s.model_copy(update={"gpa": latest[s.name]}) if s.name in latest else s
    ).to_list()
    return {
        "applied_updates": latest,
        "rankings": Pipeline(updated).sorted(key=lambda s: s.gpa, reverse=True).limit(5)
                                     .map(lambda s: f"{s.name}: {s.gpa}").to_list(),
        "average_gpa_after_update": round(Pipeline(updated).map(lambda s: s.gpa).average().or_else(0.0), 3),
        "excellent_count": Pipeline(updated).filter(lambda s: s.gpa >= 4.0).count(),
    }
