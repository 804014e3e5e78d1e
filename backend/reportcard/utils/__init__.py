"""
Utility modules for KinderReport.
"""

from .grading import (
    GRADING_SYSTEM,
    calculate_total,
    calculate_average,
    get_grade_info,
    get_student_total_score,
    get_total_possible_score
)

__all__ = [
    "GRADING_SYSTEM",
    "calculate_total",
    "calculate_average",
    "get_grade_info",
    "get_student_total_score",
    "get_total_possible_score"
]
