import json

from ptengine.main import main


def test_main_loads_model_and_reports(model_dir, tmp_path, capsys):
    out_dir = tmp_path / "out"

    assert main(["--model-dir", str(model_dir), "--output-dir", str(out_dir)]) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["artifacts"] == ["sub/notes.md", "synset.txt"]
    assert summary["model"]["name"] == "model"
    assert summary["trainable_parameters"] == 4 * 3 + 3 + 3 + 3
    assert summary["devices"] == ["cpu"]

    events = [json.loads(line)["event"] for line in (out_dir / "events.jsonl").read_text().splitlines()]
    assert events[0] == "session_start"
    assert "model_loaded" in events
    assert events[-1] == "session_complete"


def test_main_without_model(tmp_path, capsys):
    assert main(["--output-dir", str(tmp_path)]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["model"]["loaded"] is False
    assert "trainable_parameters" not in summary


def test_main_help(capsys):
    assert main(["--help"]) == 1
    assert "usage" in capsys.readouterr().out
