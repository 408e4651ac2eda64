from __future__ import annotations

from pathlib import Path

import pytest

from threatrelay.repositories.sent_log_repository import SentLogRepository


def test_missing_log_is_empty(tmp_path: Path) -> None:
    repository = SentLogRepository(tmp_path / "missing" / "logs.txt")

    assert repository.load_ids() == frozenset()
    assert not repository.contains("1")


def test_append_creates_file_and_records_id(tmp_path: Path) -> None:
    path = tmp_path / "state" / "logs.txt"
    repository = SentLogRepository(path)

    repository.append(" 101 ")
    repository.append("205")

    assert path.read_text(encoding="utf-8") == "101\n205\n"
    assert repository.contains("101")
    assert repository.contains(" 205\n")
    assert SentLogRepository(path).load_ids() == frozenset({"101", "205"})


def test_append_repairs_missing_trailing_newline(tmp_path: Path) -> None:
    path = tmp_path / "logs.txt"
    path.write_text("1\n2", encoding="utf-8")
    repository = SentLogRepository(path)

    repository.append("3")

    assert path.read_text(encoding="utf-8") == "1\n2\n3\n"


def test_existing_log_ignores_blank_lines_and_padding(tmp_path: Path) -> None:
    path = tmp_path / "logs.txt"
    path.write_text("\n 7 \r\n\n8\n", encoding="utf-8")

    assert SentLogRepository(path).load_ids() == frozenset({"7", "8"})


def test_append_rejects_blank_id(tmp_path: Path) -> None:
    repository = SentLogRepository(tmp_path / "logs.txt")

    with pytest.raises(ValueError):
        repository.append("   ")
    assert not repository.path.exists()
