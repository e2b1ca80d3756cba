"""
批量成绩录入主程序
读取一批分数，合并进现有成绩集合，再写回数据服务或本地快照文件
"""

import csv
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import requests
import yaml

from grade_store import GradeStore, PersistError
from grading import average_gpa, student_gpa
from models import GradeRecordManager, ScoreRecord, ScoreUpdate, UpdateMode
from reconciler import (
    DEFAULT_CREDITS,
    DEFAULT_SEMESTER,
    DuplicateRecordError,
    diff_records,
    reconcile,
)


def load_config(config_file: str = "config.yaml") -> dict:
    """加载配置文件"""
    config_path = Path(config_file)

    if not config_path.exists():
        print(f"配置文件 {config_file} 不存在，请参考 config_sample.yaml 创建配置文件")
        sys.exit(1)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.load(f, Loader=yaml.FullLoader)
        return config or {}
    except (OSError, yaml.YAMLError) as e:
        print(f"读取配置文件失败: {e}")
        sys.exit(1)


def validate_config(config: dict) -> bool:
    """验证配置文件"""
    required_fields = ["course_id", "updates_file"]

    for field in required_fields:
        if config.get(field) in (None, ""):
            print(f"配置文件缺少必要字段: {field}")
            return False

    return True


def parse_request_timeout(timeout_cfg) -> tuple[float, float]:
    """单个数字表示 read timeout（connect 仍为 5s），也可写成 [connect, read]"""
    if isinstance(timeout_cfg, (list, tuple)) and len(timeout_cfg) == 2:
        return (float(timeout_cfg[0]), float(timeout_cfg[1]))
    if isinstance(timeout_cfg, (int, float)) and not isinstance(timeout_cfg, bool):
        return (5.0, float(timeout_cfg))
    return (5.0, 10.0)


def load_updates(updates_file: str, mode: UpdateMode = UpdateMode.PARTIAL) -> List[ScoreUpdate]:
    """读取 CSV 分数文件，表头为 studentId,score[,credits,semester]"""
    with open(updates_file, "r", encoding="utf-8", newline="") as f:
        return [ScoreUpdate.from_row(row, mode) for row in csv.DictReader(f)]


class BulkGradeUpdater:
    """批量成绩录入 - 加载快照、合并、写回"""

    def __init__(self, config: dict, store: Optional[GradeStore] = None):
        self.config = config
        self.course_id = int(config["course_id"])
        self.default_credits = int(config.get("default_credits", DEFAULT_CREDITS))
        self.default_semester = config.get("default_semester", DEFAULT_SEMESTER)
        self.mode = UpdateMode.REPLACE if config.get("replace") else UpdateMode.PARTIAL

        self.store = store
        self.owns_store = False
        if self.store is None and config.get("api_url"):
            self.owns_store = True
            self.store = GradeStore(
                base_url=config["api_url"],
                request_timeout=parse_request_timeout(config.get("request_timeout")),
                debug_http=bool(config.get("debug_http", False)),
            )
        self.record_manager = GradeRecordManager(config.get("data_file", "grade_data.json"))

    def close(self):
        """关闭由本对象创建的数据服务会话"""
        if self.owns_store and self.store is not None:
            self.store.close()

    def load_records(self) -> Optional[List[ScoreRecord]]:
        """步骤1: 获取当前成绩快照"""
        print(f"{'[加载数据]':<15}: 开始加载成绩记录...")
        if self.store is not None:
            try:
                records = self.store.get_all()
            except requests.exceptions.RequestException as e:
                print(f"{'[加载数据]':<15}: 无法从数据服务加载 - {e}")
                return None
        else:
            # 只有文件不存在才从空快照开始；文件损坏时不能覆盖它
            if not self.record_manager.initialize_from_file() and self.record_manager.data_file.exists():
                print(f"{'[加载数据]':<15}: 本地快照 {self.record_manager.data_file} 无法读取")
                return None
            records = self.record_manager.get_all_records()

        print(f"{'[加载数据]':<15}: 共 {len(records)} 条成绩记录")
        return records

    def load_batch(self) -> Optional[List[ScoreUpdate]]:
        """步骤2: 读取本次提交的分数"""
        updates_file = self.config["updates_file"]
        try:
            updates = load_updates(updates_file, self.mode)
        except (OSError, ValueError) as e:
            print(f"{'[读取分数]':<15}: 读取 {updates_file} 失败 - {e}")
            return None

        print(f"{'[读取分数]':<15}: 读取到 {len(updates)} 条分数（课程 {self.course_id}）")
        return updates

    def save(self, before: List[ScoreRecord], after: List[ScoreRecord]) -> bool:
        """步骤4: 写回变化的记录"""
        summary = diff_records(before, after)
        print(f"{'[保存数据]':<15}: 新增 {len(summary.created)} 条，更新 {len(summary.updated)} 条")

        if self.store is not None:
            try:
                self.store.persist(summary)
            except PersistError as e:
                print(f"{'[保存数据]':<15}: {e}")
                return False
            return True

        self.record_manager.replace_all(after)
        return self.record_manager.save_to_file()

    def print_course_summary(self, records: List[ScoreRecord]):
        students = sorted({r.student_id for r in records if r.course_id == self.course_id})
        gpas = [student_gpa(records, student_id) for student_id in students]
        print(f"{'[统计]':<15}: 课程 {self.course_id} 共 {len(students)} 名学生，平均 GPA {average_gpa(gpas):.2f}")

    def run_full_workflow(self) -> bool:
        """运行完整的工作流程"""
        print(f"{'[开始]':<15}: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print("=" * 60)

        records = self.load_records()
        if records is None:
            print(f"{'[错误]':<15}: 加载数据失败")
            return False

        updates = self.load_batch()
        if updates is None:
            print(f"{'[错误]':<15}: 读取分数失败")
            return False

        # 步骤3: 合并
        try:
            merged = reconcile(
                records,
                self.course_id,
                updates,
                default_credits=self.default_credits,
                default_semester=self.default_semester,
            )
        except DuplicateRecordError as e:
            print(f"{'[错误]':<15}: {e}")
            return False

        if not self.save(records, merged):
            print(f"{'[错误]':<15}: 保存数据失败")
            return False

        print("=" * 60)
        self.print_course_summary(merged)
        print(f"{'[完成]':<15}: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        return True


def main():
    """主函数 - 执行完整的批量录入流程"""
    config_file = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
    config = load_config(config_file)

    if not validate_config(config):
        sys.exit(1)

    updater = BulkGradeUpdater(config)

    try:
        success = updater.run_full_workflow()
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print(f"\n{'[中断]':<15}: 用户中断程序")
        sys.exit(1)
    finally:
        updater.close()


if __name__ == "__main__":
    main()
