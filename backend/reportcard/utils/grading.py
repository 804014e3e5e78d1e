"""
Score totals and grade bands for preschool report cards.
"""

from dataclasses import dataclass
from typing import Any, List, Sequence

from reportcard.schemas.report import SubjectScore


@dataclass(frozen=True)
class GradeInfo:
    grade: str
    remark: str


GRADING_SYSTEM = [
    {"grade": "A+", "range": "90-100", "remark": "Exceeding"},
    {"grade": "A", "range": "70-89", "remark": "Exceeding"},
    {"grade": "B", "range": "50-69", "remark": "Expected"},
    {"grade": "C", "range": "40-49", "remark": "Emerging"},
    {"grade": "D", "range": "0-39", "remark": "Needs Support"},
]


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def calculate_total(ca: Any, exam: Any) -> float:
    return _number(ca) + _number(exam)


def get_grade_info(total_score: float) -> GradeInfo:
    if total_score >= 90:
        return GradeInfo("A+", "EXCELLENT")
    if total_score >= 70:
        return GradeInfo("A", "EXCEEDING")
    if total_score >= 50:
        return GradeInfo("B", "EXPECTED")
    if total_score >= 40:
        return GradeInfo("C", "EMERGING")
    return GradeInfo("D", "NEEDS SPECIAL HELP")


def calculate_average(subjects: Sequence[SubjectScore]) -> float:
    if not subjects:
        return 0.0
    return round(get_student_total_score(subjects) / len(subjects), 1)


def get_total_possible_score(subjects: List[SubjectScore]) -> int:
    return len(subjects) * 100


def get_student_total_score(subjects: Sequence[SubjectScore]) -> float:
    return sum(calculate_total(s.ca_score, s.exam_score) for s in subjects)
