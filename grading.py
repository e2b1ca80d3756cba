"""
成绩等级与 GPA 计算

所有调用方（表单校验、数据服务、报表）统一使用本模块，
不在别处重复维护分数线和绩点表。
"""

from dataclasses import replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from models import GradeEntry, ScoreRecord


# 分数线：包含下界，从高到低匹配，第一个命中即返回
GRADE_BOUNDARIES: List[Tuple[float, str]] = [
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (77, "C+"),
    (73, "C"),
    (70, "C-"),
    (67, "D+"),
    (63, "D"),
    (60, "D-"),
]

FAILING_GRADE = "F"

GRADE_POINTS = {
    "A+": 4.0,
    "A": 4.0,
    "A-": 3.7,
    "B+": 3.3,
    "B": 3.0,
    "B-": 2.7,
    "C+": 2.3,
    "C": 2.0,
    "C-": 1.7,
    "D+": 1.3,
    "D": 1.0,
    "D-": 0.7,
    "F": 0.0,
}

# GPA 荣誉等级，同样从高到低匹配
GPA_CLASSIFICATIONS: List[Tuple[float, str]] = [
    (3.9, "Summa Cum Laude"),
    (3.7, "Magna Cum Laude"),
    (3.5, "Cum Laude"),
    (3.0, "Dean's List"),
    (2.0, "Good Standing"),
]


def classify(score: float) -> str:
    """把分数映射为等级。

    不做范围校验：低于 60（包括负数）为 F，97 及以上为 A+，没有上限。
    """
    for lower_bound, letter in GRADE_BOUNDARIES:
        if score >= lower_bound:
            return letter
    return FAILING_GRADE


def is_valid_letter(letter: str) -> bool:
    return letter in GRADE_POINTS


def grade_points(letter: str) -> float:
    """等级对应的绩点，无法识别的等级按 0.0 处理"""
    return GRADE_POINTS.get(letter, 0.0)


def round_half_up(value: float, places: int = 2) -> float:
    """四舍五入（而不是 round() 的银行家舍入）"""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def compute_gpa(entries: Iterable[GradeEntry]) -> float:
    """按学分加权计算 GPA，保留两位小数。

    空输入（或总学分为 0）返回 0。
    """
    total_points = 0.0
    total_credits = 0
    for entry in entries:
        total_points += grade_points(entry.letter) * entry.credits
        total_credits += entry.credits

    if total_credits <= 0:
        return 0
    return round_half_up(total_points / total_credits)


def student_gpa(records: Iterable[ScoreRecord], student_id: int) -> float:
    """某个学生全部成绩记录的 GPA"""
    return compute_gpa(
        record.to_grade_entry()
        for record in records
        if record.student_id == student_id
    )


def average_gpa(values: Iterable[float]) -> float:
    """多个 GPA 的简单平均（不按学分加权）"""
    values = list(values)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def gpa_classification(gpa: float) -> str:
    for lower_bound, label in GPA_CLASSIFICATIONS:
        if gpa >= lower_bound:
            return label
    return "Academic Probation"


def fill_missing_grades(records: Iterable[ScoreRecord]) -> Tuple[List[ScoreRecord], int]:
    """为缺少等级的记录按分数补全等级。

    Returns:
        tuple[List[ScoreRecord], int]: (新的记录列表, 被补全的记录数量)
    """
    filled: List[ScoreRecord] = []
    count = 0
    for record in records:
        current: Optional[str] = record.grade.strip() if record.grade else ""
        if current:
            filled.append(record)
            continue
        filled.append(replace(record, grade=classify(record.score)))
        count += 1
    return filled, count
