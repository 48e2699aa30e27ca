from __future__ import annotations

import pytest
import yaml

from knowledge_rag.main import build_parser, main


@pytest.fixture
def cli_settings(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setattr("knowledge_rag.config.loader.load_dotenv", lambda: None)
    path = tmp_path / "settings.yaml"
    path.write_text(
        yaml.dump(
            {
                "database": {"path": str(tmp_path / "cli.db")},
                "embedding": {"backend": "deterministic"},
                "logging": {"level": "minimal"},
            }
        )
    )
    return str(path)


def test_unknown_command_rejected() -> None:
    parser = build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["phase2-live"])
    parsed = parser.parse_args(["search", "atlas", "--limit", "3"])
    assert parsed.command == "search"
    assert parsed.limit == 3
    assert parsed.min_score == 0.7


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 0
    assert "knowledge-rag" in capsys.readouterr().out


def test_add_search_ask_flow(tmp_path, cli_settings, capsys) -> None:
    note = tmp_path / "atlas.md"
    note.write_text("The Atlas migration moves billing onto the ledger service.")

    assert main(["--settings", cli_settings, "add", str(note), "--owner", "u1"]) == 0
    assert "Added" in capsys.readouterr().out

    assert main(["--settings", cli_settings, "search", "ledger", "--keyword"]) == 0
    assert "0.500" in capsys.readouterr().out

    assert main(
        ["--settings", cli_settings, "ask", "The Atlas migration moves billing onto the ledger service.",
         "--session", "s1", "--message", "m1"]
    ) == 0
    out = capsys.readouterr().out
    assert "KNOWLEDGE BASE CONTEXT" in out
    assert "Tracked 1 citations" in out

    assert main(["--settings", cli_settings, "citations", "--session", "s1"]) == 0
    assert "atlas" in capsys.readouterr().out

    assert main(["--settings", cli_settings, "stats", "--owner", "u1"]) == 0
    out = capsys.readouterr().out
    assert "total_documents" in out
    assert "deterministic" in out


def test_reindex_missing_document_fails(cli_settings, capsys) -> None:
    assert main(["--settings", cli_settings, "index", "does-not-exist"]) == 1
    assert "Document not found" in capsys.readouterr().out


def test_missing_settings_file_falls_back_to_defaults(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    assert main(["--settings", "nowhere.yaml", "--db", str(tmp_path / "d.db"), "stats"]) == 0


def test_invalid_settings_exit_with_error(tmp_path, capsys) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.dump({"indexing": {"chunk_size": 50, "chunk_overlap": 80}}))
    assert main(["--settings", str(path), "stats"]) == 1
    assert "Invalid settings" in capsys.readouterr().out
