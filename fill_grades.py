"""One-off utility: fill missing `grade` letters in grade_data.json.

Older snapshots may contain records that only carry a numeric `score`.
The letter is derived with the same score thresholds used everywhere else
(see grading.classify). Records that already have a letter are left unchanged.
"""

from __future__ import annotations

import argparse

from grading import fill_missing_grades, gpa_classification, student_gpa
from models import GradeRecordManager


def main() -> int:
    parser = argparse.ArgumentParser(description="Fill missing letter grades in an existing grade_data.json")
    parser.add_argument("--data-file", default="grade_data.json", help="Path to grade_data.json")
    parser.add_argument("--show-gpa", action="store_true", help="Print each student's GPA afterwards")
    args = parser.parse_args()

    mgr = GradeRecordManager(args.data_file)
    mgr.initialize_from_file()
    records, updated = fill_missing_grades(mgr.get_all_records())
    if updated:
        mgr.replace_all(records)
        mgr.save_to_file()
    print(f"[fill_grades] updated records: {updated}")

    if args.show_gpa:
        for student_id in sorted({r.student_id for r in records}):
            gpa = student_gpa(records, student_id)
            print(f"[fill_grades] student {student_id}: GPA {gpa:.2f} ({gpa_classification(gpa)})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
