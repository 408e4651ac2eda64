from __future__ import annotations

from pathlib import Path


class SentLogRepository:
    """Newline-delimited log of delivered record ids. Only ever appended to."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._ids: set[str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load_ids(self) -> frozenset[str]:
        return frozenset(self._loaded())

    def contains(self, record_id: str) -> bool:
        return record_id.strip() in self._loaded()

    def append(self, record_id: str) -> None:
        normalized = record_id.strip()
        if not normalized:
            raise ValueError("record id must not be empty")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        prefix = "" if self._ends_with_newline() else "\n"
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(f"{prefix}{normalized}\n")
        self._loaded().add(normalized)

    def _loaded(self) -> set[str]:
        if self._ids is None:
            self._ids = self._read_ids()
        return self._ids

    def _read_ids(self) -> set[str]:
        if not self._path.is_file():
            return set()
        raw = self._path.read_text(encoding="utf-8")
        return {line.strip() for line in raw.splitlines() if line.strip()}

    def _ends_with_newline(self) -> bool:
        if not self._path.is_file():
            return True
        with self._path.open("rb") as handle:
            handle.seek(0, 2)
            if handle.tell() == 0:
                return True
            handle.seek(-1, 2)
            return handle.read(1) == b"\n"
