from __future__ import annotations

import json
from email.message import Message
from pathlib import Path
from types import TracebackType
from urllib.request import Request

import pytest
from click.testing import CliRunner

from threatrelay.cli import main
from threatrelay.services import document_source
from threatrelay.services.embed_builder import WebhookMessage
from threatrelay.services.webhook_client import WebhookClient


class _FakeResponse:
    def __init__(self, body: bytes) -> None:
        self._body = body
        self.headers = Message()
        self.headers["Content-Type"] = "text/html; charset=utf-8"

    def __enter__(self) -> _FakeResponse:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        return None

    def read(self) -> bytes:
        return self._body


def _write_document(tmp_path: Path, reports_document: str) -> Path:
    path = tmp_path / "reports.html"
    path.write_text(reports_document, encoding="utf-8")
    return path


def test_parse_file_writes_json_to_stdout(tmp_path: Path, reports_document: str) -> None:
    document_path = _write_document(tmp_path, reports_document)

    result = CliRunner().invoke(main, ["parse", "--file", str(document_path)])

    assert result.exit_code == 0, result.output
    records = json.loads(result.stdout)
    assert [record["id"] for record in records] == ["205", "101"]
    assert records[1]["threatActor"] == "ShadowCrew"
    assert records[1]["sourceUrl"] == "https://breachforums.st/Thread-Acme-Corp"
    assert (tmp_path / "runtime-data" / "logs" / "threatrelay.log").exists()


def test_parse_writes_records_file(tmp_path: Path, reports_document: str) -> None:
    document_path = _write_document(tmp_path, reports_document)
    out_path = tmp_path / "out" / "forums.json"

    result = CliRunner().invoke(
        main,
        ["parse", "--file", str(document_path), "--out", str(out_path)],
    )

    assert result.exit_code == 0, result.output
    assert "Extracted 2 reports" in result.output
    assert result.stdout == ""
    text = out_path.read_text(encoding="utf-8")
    assert text.endswith("]\n")
    assert [record["id"] for record in json.loads(text)] == ["205", "101"]


def test_parse_uses_configured_source_url(
    monkeypatch: pytest.MonkeyPatch,
    reports_document: str,
) -> None:
    requested: list[str] = []

    def _fake_urlopen(request: Request, timeout: float) -> _FakeResponse:
        requested.append(request.full_url)
        return _FakeResponse(reports_document.encode("utf-8"))

    monkeypatch.setattr(document_source, "urlopen", _fake_urlopen)
    monkeypatch.setenv("SOURCE_URL", "https://tracker.example.com/reports")

    result = CliRunner().invoke(main, ["parse"])

    assert result.exit_code == 0, result.output
    assert requested == ["https://tracker.example.com/reports"]
    assert len(json.loads(result.stdout)) == 2


def test_parse_without_input_fails() -> None:
    result = CliRunner().invoke(main, ["parse"])

    assert result.exit_code == 1
    assert "No input provided" in result.output
    assert result.stdout == ""


def test_send_delivers_new_records_once(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    reports_document: str,
) -> None:
    sent: list[WebhookMessage] = []

    def _fake_send(self: WebhookClient, message: WebhookMessage) -> None:
        sent.append(message)

    monkeypatch.setattr(WebhookClient, "send", _fake_send)
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.example/api/webhooks/1/t")
    monkeypatch.setenv("DISCORD_ROLE_ID", "555")
    document_path = _write_document(tmp_path, reports_document)
    runner = CliRunner()

    parsed = runner.invoke(main, ["parse", "--file", str(document_path), "--out", "forums.json"])
    first = runner.invoke(main, ["send"])
    second = runner.invoke(main, ["send"])

    assert parsed.exit_code == 0, parsed.output
    assert first.exit_code == 0, first.output
    assert "Done. Sent: 2, skipped (already sent): 0" in first.output
    assert second.exit_code == 0, second.output
    assert "Done. Sent: 0, skipped (already sent): 2" in second.output
    assert [message.payload["embeds"][0]["title"] for message in sent] == [
        "Ministry portal defaced",
        "Acme Corp customer database leaked",
    ]
    assert sent[0].payload["content"] == "<@&555>"
    assert (tmp_path / "logs.txt").read_text(encoding="utf-8") == "205\n101\n"


def test_send_requires_webhook(tmp_path: Path) -> None:
    (tmp_path / "forums.json").write_text("[]", encoding="utf-8")

    result = CliRunner().invoke(main, ["send"])

    assert result.exit_code == 1
    assert "Invalid delivery configuration" in result.output


def test_send_reports_unreadable_records(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("THREATRELAY_WEBHOOK_URL", "https://discord.example/api/webhooks/1/t")
    records_path = tmp_path / "broken.json"
    records_path.write_text("{not json", encoding="utf-8")

    result = CliRunner().invoke(main, ["send", "--records", str(records_path)])

    assert result.exit_code == 1
    assert "broken.json is not valid JSON" in result.output
