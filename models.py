"""
成绩数据模型定义
"""

import json
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class ScoreRecord:
    """成绩记录：一个学生在一门课程上的分数与等级"""

    student_id: int
    course_id: int
    score: float
    grade: str  # 由分数推导出的等级
    credits: int
    semester: str
    id: Optional[int] = None  # 数据服务分配的记录ID，未持久化时为 None

    def get_unique_key(self) -> Tuple[int, int]:
        """记录的唯一标识：同一学生同一课程只保留一条记录"""
        return (self.student_id, self.course_id)

    def has_grade_update(self, other: "ScoreRecord") -> bool:
        """检查与另一条同键记录相比是否有字段变化"""
        if not isinstance(other, ScoreRecord):
            return False
        return self.get_unique_key() == other.get_unique_key() and (
            self.score != other.score
            or self.grade != other.grade
            or self.credits != other.credits
            or self.semester != other.semester
        )

    def to_grade_entry(self) -> "GradeEntry":
        return GradeEntry(letter=self.grade, credits=self.credits)

    def to_dict(self) -> dict:
        """转换为数据服务使用的 JSON 格式（camelCase 键）"""
        data = {
            "studentId": self.student_id,
            "courseId": self.course_id,
            "score": self.score,
            "grade": self.grade,
            "credits": self.credits,
            "semester": self.semester,
        }
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict):
        """从数据服务返回的字典创建记录"""
        return cls(
            student_id=int(data["studentId"]),
            course_id=int(data["courseId"]),
            score=data.get("score", 0),
            grade=data.get("grade", ""),
            credits=int(data.get("credits", 0)),
            semester=data.get("semester", ""),
            id=data.get("id"),
        )


@dataclass(frozen=True)
class GradeEntry:
    """GPA 计算的输入项：等级 + 学分"""

    letter: str
    credits: int


class UpdateMode(Enum):
    """批量更新的合并方式"""

    # 只覆盖显式给出的字段，未给出的学分/学期沿用原记录
    PARTIAL = "partial"
    # 学分/学期一律覆盖，未给出时使用默认值
    REPLACE = "replace"


@dataclass(frozen=True)
class ScoreUpdate:
    """一次批量提交中某个学生的分数"""

    student_id: int
    score: float
    credits: Optional[int] = None
    semester: Optional[str] = None
    mode: UpdateMode = UpdateMode.PARTIAL

    def to_dict(self) -> dict:
        return {k: v.value if isinstance(v, Enum) else v for k, v in asdict(self).items()}

    @classmethod
    def from_row(cls, row: dict, mode: UpdateMode = UpdateMode.PARTIAL):
        """从 CSV 行（studentId,score[,credits,semester]）创建更新项"""
        try:
            student_id = int(row["studentId"])
            score = float(row["score"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"无效的成绩行 {row}: {e}") from e

        credits = row.get("credits")
        semester = row.get("semester")
        return cls(
            student_id=student_id,
            score=score,
            credits=int(credits) if credits not in (None, "") else None,
            semester=semester or None,
            mode=mode,
        )


class GradeRecordManager:
    """本地成绩快照管理器，把成绩记录集合读写到 JSON 文件"""

    def __init__(self, data_file: str = "grade_data.json"):
        self.data_file = Path(data_file)
        self.records: List[ScoreRecord] = []

    def initialize_from_file(self) -> bool:
        """从文件初始化成绩数据"""
        if not self.data_file.exists():
            print(f"数据文件 {self.data_file} 不存在，初始化为空列表")
            return False

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)

            self.records = [ScoreRecord.from_dict(item) for item in data.get("grades", [])]
            print(f"成功从文件加载 {len(self.records)} 条成绩记录")
            return True

        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            print(f"从文件加载成绩数据时出错: {e}")
            return False

    def replace_all(self, records: List[ScoreRecord]):
        """用新的快照替换当前记录集合"""
        self.records = list(records)

    def save_to_file(self) -> bool:
        """将当前成绩记录保存到文件"""
        backup_file = self.data_file.with_suffix(".json.bak")
        try:
            # 创建备份
            if self.data_file.exists():
                self.data_file.replace(backup_file)

            data = {
                "grades": [record.to_dict() for record in self.records],
                "total_count": len(self.records),
            }

            with open(self.data_file, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)

            print(f"成功保存 {len(self.records)} 条成绩记录到文件")
            return True

        except (OSError, TypeError, ValueError) as e:
            print(f"保存成绩数据到文件时出错: {e}")
            # 如果保存失败，尝试恢复备份
            if backup_file.exists():
                backup_file.replace(self.data_file)
            return False

    def get_all_records(self) -> List[ScoreRecord]:
        return list(self.records)

    def get_by_student(self, student_id: int) -> List[ScoreRecord]:
        return [r for r in self.records if r.student_id == student_id]

    def get_by_course(self, course_id: int) -> List[ScoreRecord]:
        return [r for r in self.records if r.course_id == course_id]

    def get_records_count(self) -> int:
        return len(self.records)
