"""
Tests for the config-driven bulk update workflow.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

import main as main_module
from grade_store import GradeStore, PersistError
from main import BulkGradeUpdater, load_config, load_updates, parse_request_timeout, validate_config
from models import ScoreRecord, ScoreUpdate, UpdateMode


@pytest.fixture
def scores_csv(tmp_path: Path) -> Path:
    path = tmp_path / "scores.csv"
    path.write_text("studentId,score,credits,semester\n1,95,,\n2,55,4,Spring 2025\n", encoding="utf-8")
    return path


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    path = tmp_path / "grade_data.json"
    grades = [
        {"id": 1, "studentId": 1, "courseId": 10, "score": 80, "grade": "B-", "credits": 3, "semester": "Fall 2024"},
        {"id": 2, "studentId": 3, "courseId": 11, "score": 90, "grade": "A-", "credits": 4, "semester": "Fall 2024"},
    ]
    path.write_text(json.dumps({"grades": grades}), encoding="utf-8")
    return path


class TestConfig:
    def test_load_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("course_id: 10\nupdates_file: scores.csv\nrequest_timeout: [3, 8]\n", encoding="utf-8")

        config = load_config(str(config_file))

        assert config == {"course_id": 10, "updates_file": "scores.csv", "request_timeout": [3, 8]}

    def test_missing_config_exits(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            load_config(str(tmp_path / "nope.yaml"))
        assert exc_info.value.code == 1

    def test_validate_config(self) -> None:
        assert validate_config({"course_id": 10, "updates_file": "scores.csv"})
        assert not validate_config({"course_id": 10})
        assert not validate_config({"updates_file": "scores.csv"})

    @pytest.mark.parametrize(
        "value, expected",
        [([3, 8], (3.0, 8.0)), (15, (5.0, 15.0)), (None, (5.0, 10.0)), ("bad", (5.0, 10.0))],
    )
    def test_parse_request_timeout(self, value, expected) -> None:
        assert parse_request_timeout(value) == expected


class TestLoadUpdates:
    def test_reads_csv(self, scores_csv: Path) -> None:
        updates = load_updates(str(scores_csv))

        assert updates == [
            ScoreUpdate(student_id=1, score=95.0),
            ScoreUpdate(student_id=2, score=55.0, credits=4, semester="Spring 2025"),
        ]

    def test_replace_mode(self, scores_csv: Path) -> None:
        updates = load_updates(str(scores_csv), UpdateMode.REPLACE)

        assert all(u.mode is UpdateMode.REPLACE for u in updates)


class TestBulkGradeUpdaterLocal:
    def test_full_workflow_on_local_snapshot(self, data_file: Path, scores_csv: Path) -> None:
        config = {"course_id": 10, "updates_file": str(scores_csv), "data_file": str(data_file)}

        assert BulkGradeUpdater(config).run_full_workflow() is True

        saved = json.loads(data_file.read_text(encoding="utf-8"))["grades"]
        assert saved == [
            {"id": 1, "studentId": 1, "courseId": 10, "score": 95.0, "grade": "A", "credits": 3, "semester": "Fall 2024"},
            {"id": 2, "studentId": 3, "courseId": 11, "score": 90, "grade": "A-", "credits": 4, "semester": "Fall 2024"},
            {"studentId": 2, "courseId": 10, "score": 55.0, "grade": "F", "credits": 4, "semester": "Spring 2025"},
        ]

    def test_duplicate_records_abort(self, tmp_path: Path, scores_csv: Path) -> None:
        data_file = tmp_path / "grade_data.json"
        dup = {"studentId": 1, "courseId": 10, "score": 80, "grade": "B-", "credits": 3, "semester": "Fall 2024"}
        data_file.write_text(json.dumps({"grades": [dup, dup]}), encoding="utf-8")
        config = {"course_id": 10, "updates_file": str(scores_csv), "data_file": str(data_file)}

        assert BulkGradeUpdater(config).run_full_workflow() is False
        assert not (tmp_path / "grade_data.json.bak").exists()

    @pytest.mark.parametrize(
        "content",
        [
            '{"grades": [{"id": 1, "studentId": 1, "courseId": 10, "score": 80',
            "[]",
            '{"grades": [{"studentId": null, "courseId": 10}]}',
        ],
    )
    def test_unreadable_snapshot_is_left_untouched(self, tmp_path: Path, scores_csv: Path, content: str) -> None:
        data_file = tmp_path / "grade_data.json"
        data_file.write_text(content, encoding="utf-8")
        config = {"course_id": 10, "updates_file": str(scores_csv), "data_file": str(data_file)}

        assert BulkGradeUpdater(config).run_full_workflow() is False

        assert data_file.read_text(encoding="utf-8") == content
        assert not (tmp_path / "grade_data.json.bak").exists()

    def test_bad_updates_file(self, data_file: Path, tmp_path: Path) -> None:
        bad_csv = tmp_path / "bad.csv"
        bad_csv.write_text("studentId,score\nabc,90\n", encoding="utf-8")
        config = {"course_id": 10, "updates_file": str(bad_csv), "data_file": str(data_file)}

        assert BulkGradeUpdater(config).run_full_workflow() is False

    def test_defaults_from_config(self, tmp_path: Path, scores_csv: Path) -> None:
        data_file = tmp_path / "grade_data.json"
        config = {
            "course_id": 10,
            "updates_file": str(scores_csv),
            "data_file": str(data_file),
            "default_credits": 5,
            "default_semester": "Summer 2025",
        }

        assert BulkGradeUpdater(config).run_full_workflow() is True

        saved = json.loads(data_file.read_text(encoding="utf-8"))["grades"]
        assert (saved[0]["credits"], saved[0]["semester"]) == (5, "Summer 2025")
        assert (saved[1]["credits"], saved[1]["semester"]) == (4, "Spring 2025")


class TestBulkGradeUpdaterStore:
    @pytest.fixture
    def store(self) -> MagicMock:
        store = MagicMock(spec=GradeStore)
        store.get_all.return_value = [ScoreRecord(1, 10, 80, "B-", 3, "Fall 2024", id=1)]
        return store

    def test_persists_changes(self, store: MagicMock, scores_csv: Path) -> None:
        config = {"course_id": 10, "updates_file": str(scores_csv)}

        assert BulkGradeUpdater(config, store=store).run_full_workflow() is True

        summary = store.persist.call_args.args[0]
        assert summary.updated == [ScoreRecord(1, 10, 95.0, "A", 3, "Fall 2024", id=1)]
        assert summary.created == [ScoreRecord(2, 10, 55.0, "F", 4, "Spring 2025")]

    def test_load_failure(self, store: MagicMock, scores_csv: Path) -> None:
        store.get_all.side_effect = requests.exceptions.ConnectionError("refused")
        config = {"course_id": 10, "updates_file": str(scores_csv)}

        assert BulkGradeUpdater(config, store=store).run_full_workflow() is False
        store.persist.assert_not_called()

    def test_persist_failure(self, store: MagicMock, scores_csv: Path) -> None:
        store.persist.side_effect = PersistError("写回成绩失败", written=[])
        config = {"course_id": 10, "updates_file": str(scores_csv)}

        assert BulkGradeUpdater(config, store=store).run_full_workflow() is False

    def test_api_url_builds_store(self, scores_csv: Path) -> None:
        config = {"course_id": 10, "updates_file": str(scores_csv), "api_url": "http://api:3001", "request_timeout": 7}

        updater = BulkGradeUpdater(config)

        assert isinstance(updater.store, GradeStore)
        assert updater.store.base_url == "http://api:3001"
        assert updater.store.request_timeout == (5.0, 7.0)

    def test_close_releases_owned_store(self, scores_csv: Path) -> None:
        config = {"course_id": 10, "updates_file": str(scores_csv), "api_url": "http://api:3001"}
        updater = BulkGradeUpdater(config)

        with patch.object(updater.store, "close") as mock_close:
            updater.close()

        mock_close.assert_called_once_with()

    def test_close_leaves_injected_store_open(self, store: MagicMock, scores_csv: Path) -> None:
        updater = BulkGradeUpdater({"course_id": 10, "updates_file": str(scores_csv)}, store=store)

        updater.close()

        store.close.assert_not_called()

    def test_main_closes_store(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("course_id: 10\nupdates_file: scores.csv\napi_url: http://api:3001\n", encoding="utf-8")
        monkeypatch.setattr(sys, "argv", ["main", str(config_file)])

        with patch.object(BulkGradeUpdater, "run_full_workflow", return_value=True), \
                patch.object(GradeStore, "close") as mock_close:
            with pytest.raises(SystemExit) as exc_info:
                main_module.main()

        assert exc_info.value.code == 0
        mock_close.assert_called_once_with()
