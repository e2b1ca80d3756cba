"""
批量成绩合并

把某门课程的一批分数合并进现有成绩集合：已有 (学生, 课程) 记录的原位更新，
没有的追加到末尾。纯函数，不做任何 I/O，调用方负责持久化。
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Sequence

from grading import classify
from models import ScoreRecord, ScoreUpdate, UpdateMode

DEFAULT_CREDITS = 3
DEFAULT_SEMESTER = "Fall 2024"


class DuplicateRecordError(ValueError):
    """同一 (学生, 课程) 存在多条记录，数据已不一致"""

    def __init__(self, student_id: int, course_id: int, count: int):
        self.student_id = student_id
        self.course_id = course_id
        self.count = count
        super().__init__(
            f"学生 {student_id} 在课程 {course_id} 上有 {count} 条成绩记录，应当唯一"
        )


@dataclass
class ReconcileSummary:
    """合并前后两个快照的差异，用于决定需要写回数据服务的记录"""

    created: List[ScoreRecord] = field(default_factory=list)
    updated: List[ScoreRecord] = field(default_factory=list)
    unchanged: int = 0

    @property
    def total_changes(self) -> int:
        return len(self.created) + len(self.updated)


def _index_course_records(existing: Sequence[ScoreRecord], course_id: int) -> Dict[int, List[int]]:
    """学生ID -> 该课程记录在 existing 中的位置列表"""
    positions: Dict[int, List[int]] = {}
    for pos, record in enumerate(existing):
        if record.course_id == course_id:
            positions.setdefault(record.student_id, []).append(pos)
    return positions


def _merge(record: ScoreRecord, update: ScoreUpdate, default_credits: int, default_semester: str) -> ScoreRecord:
    if update.mode is UpdateMode.REPLACE:
        credits = update.credits if update.credits is not None else default_credits
        semester = update.semester if update.semester is not None else default_semester
    else:
        credits = update.credits if update.credits is not None else record.credits
        semester = update.semester if update.semester is not None else record.semester

    return replace(
        record,
        score=update.score,
        grade=classify(update.score),
        credits=credits,
        semester=semester,
    )


def reconcile(
    existing: Iterable[ScoreRecord],
    course_id: int,
    updates: Iterable[ScoreUpdate],
    default_credits: int = DEFAULT_CREDITS,
    default_semester: str = DEFAULT_SEMESTER,
) -> List[ScoreRecord]:
    """
    把一批分数合并进成绩集合

    Args:
        existing: 当前成绩记录快照
        course_id: 本批分数所属课程
        updates: 每个学生的分数提交
        default_credits: 新增记录未指定学分时使用的学分（通常为课程学分）
        default_semester: 新增记录未指定学期时使用的学期

    Returns:
        List[ScoreRecord]: 新的成绩快照。未涉及的记录保持原样与原位置，
        新增记录按提交顺序追加在末尾。

    Raises:
        DuplicateRecordError: 某个被更新的学生在该课程上已有多条记录
    """
    result = list(existing)
    positions = _index_course_records(result, course_id)

    for update in updates:
        matches = positions.get(update.student_id, [])
        if len(matches) > 1:
            raise DuplicateRecordError(update.student_id, course_id, len(matches))

        if matches:
            pos = matches[0]
            result[pos] = _merge(result[pos], update, default_credits, default_semester)
            continue

        # 新增记录；同一批次后续对该学生的提交会命中这条记录
        result.append(
            ScoreRecord(
                student_id=update.student_id,
                course_id=course_id,
                score=update.score,
                grade=classify(update.score),
                credits=update.credits if update.credits is not None else default_credits,
                semester=update.semester if update.semester is not None else default_semester,
            )
        )
        positions[update.student_id] = [len(result) - 1]

    return result


def diff_records(before: Sequence[ScoreRecord], after: Sequence[ScoreRecord]) -> ReconcileSummary:
    """
    对比 reconcile 的输入与输出

    reconcile 保证原有记录位置不变、新增记录追加在末尾，
    因此按位置对比即可。
    """
    if len(after) < len(before):
        raise ValueError("合并结果的记录数少于原快照，不是 reconcile 的输出")

    summary = ReconcileSummary()
    for old, new in zip(before, after):
        if old.get_unique_key() != new.get_unique_key():
            raise ValueError(f"记录位置不一致: {old.get_unique_key()} != {new.get_unique_key()}")
        if new.has_grade_update(old):
            summary.updated.append(new)
        else:
            summary.unchanged += 1

    summary.created.extend(after[len(before):])
    return summary
