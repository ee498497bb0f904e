from __future__ import annotations

import json
from pathlib import Path

import pytest

from imgchat_engine import cli


def _write_transcript(path: Path) -> None:
    records = [
        {"type": "user", "message": {"role": "user", "content": "<system-reminder>skip</system-reminder>"}},
        {"type": "user", "message": {"role": "user", "content": "Draw a lighthouse at night"}},
        {"type": "summary", "summary": "ignored"},
        {
            "type": "assistant",
            "message": {"role": "assistant", "content": [{"type": "text", "text": "A beam over dark water."}]},
        },
    ]
    path.write_text("\n".join(json.dumps(record) for record in records) + "\n", encoding="utf-8")


def test_parse_command_prints_summary(tmp_path: Path, capsys, monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    transcript = tmp_path / "sess-42.jsonl"
    _write_transcript(transcript)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["parse", str(transcript), "--title-max", "10"])
    assert excinfo.value.code == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["sessionId"] == "sess-42"
    assert payload["title"] == "Draw a lig..."
    assert payload["replyComplete"] is True
    assert [turn["role"] for turn in payload["turns"]] == ["user", "user", "assistant"]


def test_parse_command_missing_file(tmp_path: Path, capsys, monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["parse", str(tmp_path / "missing.jsonl")])
    assert excinfo.value.code == 1
    assert "cannot read" in capsys.readouterr().err


def test_serve_reports_config_errors(capsys, monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("PROMPT_GENERATOR", raising=False)
    monkeypatch.delenv("IMAGE_GENERATOR", raising=False)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["serve"])
    assert excinfo.value.code == 1
    assert "GEMINI_API_KEY" in capsys.readouterr().err


def test_serve_rejects_missing_watch_dir(tmp_path: Path, capsys, monkeypatch) -> None:
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "configure_logging", lambda debug: None)
    monkeypatch.setenv("PROMPT_GENERATOR", "dryrun")
    monkeypatch.setenv("IMAGE_GENERATOR", "dryrun")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["serve", "--watch-dir", str(tmp_path / "nope")])
    assert excinfo.value.code == 1
    assert "watch directory does not exist" in capsys.readouterr().err


def test_overrides_replace_config_fields(tmp_path: Path) -> None:
    args = cli._build_parser().parse_args(["serve", "--port", "9100", "--watch-dir", str(tmp_path), "--debug"])
    config = cli.load_config({"PROMPT_GENERATOR": "dryrun", "IMAGE_GENERATOR": "dryrun"})
    updated = cli._apply_overrides(config, args)
    assert updated.server_port == 9100
    assert updated.projects_dir == tmp_path
    assert updated.debug is True
    assert config.server_port == 8080
