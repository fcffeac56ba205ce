from __future__ import annotations

import json
import logging
from pathlib import Path

from docx_builders import build_package, paragraph
from docxcombine import cli
from docxcombine.errors import CombineError


class _FakeMerged:
    def __init__(self) -> None:
        self.saved_to: str | None = None

    def save(self, path):  # noqa: ANN001
        self.saved_to = str(path)
        return Path(path)


def _quiet_logging(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: logging.getLogger("docxcombine.test"))


def test_cli_merge_dispatches_with_overrides(tmp_path, monkeypatch):
    cfg_path = tmp_path / "merge.yaml"
    cfg_path.write_text("metadata:\n  title: From config\n  author: Config author\n", encoding="utf-8")
    _quiet_logging(monkeypatch)

    called: dict[str, object] = {}
    merged = _FakeMerged()

    def _fake_combine(sources, options=None, **kwargs):  # noqa: ANN001, ANN003
        called["sources"] = sources
        called["options"] = options
        return merged

    monkeypatch.setattr(cli, "combine_docx", _fake_combine)

    rc = cli.main(
        [
            "merge",
            str(tmp_path / "a.docx"),
            str(tmp_path / "b.docx"),
            "--output",
            str(tmp_path / "out.docx"),
            "--config",
            str(cfg_path),
            "--title",
            "From CLI",
            "--no-page-break",
        ]
    )

    assert rc == 0
    assert called["sources"] == [tmp_path / "a.docx", tmp_path / "b.docx"]
    options = called["options"]
    assert options.title == "From CLI"
    assert options.author == "Config author"
    assert options.page_break is False
    assert merged.saved_to == str(tmp_path / "out.docx")


def test_cli_merge_reports_combine_errors(tmp_path, monkeypatch):
    _quiet_logging(monkeypatch)

    def _fake_combine(sources, options=None, **kwargs):  # noqa: ANN001, ANN003
        raise CombineError("broken input")

    monkeypatch.setattr(cli, "combine_docx", _fake_combine)

    rc = cli.main(["merge", str(tmp_path / "a.docx"), "-o", str(tmp_path / "out.docx")])
    assert rc == 1
    assert not (tmp_path / "out.docx").exists()


def test_cli_merge_rejects_invalid_options(tmp_path, monkeypatch, capsys):
    _quiet_logging(monkeypatch)

    def _fake_combine(sources, options=None, **kwargs):  # noqa: ANN001, ANN003
        raise AssertionError("combine_docx should not run with invalid options")

    monkeypatch.setattr(cli, "combine_docx", _fake_combine)

    rc = cli.main(["merge", str(tmp_path / "a.docx"), "-o", str(tmp_path / "out.docx"), "--title", "x" * 300])
    assert rc == 2
    assert "Invalid options" in capsys.readouterr().err


def test_cli_verify_clean_file(tmp_path, capsys):
    path = build_package(body=paragraph("fine")).save(tmp_path / "clean.docx")

    rc = cli.main(["verify", str(path)])

    assert rc == 0
    out = capsys.readouterr().out
    assert "Section breaks: 0" in out
    assert "(errors: 0)" in out


def test_cli_verify_writes_report_for_broken_file(tmp_path):
    path = build_package(body=paragraph("dangling", style="Missing")).save(tmp_path / "broken.docx")
    report = tmp_path / "reports" / "verify.json"

    rc = cli.main(["verify", str(path), "--report", str(report)])

    assert rc == 1
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["file"] == str(path)
    codes = [issue["code"] for issue in payload["issues"]]
    assert "dangling_style_reference" in codes


def test_cli_verify_unreadable_file(tmp_path):
    bogus = tmp_path / "bogus.docx"
    bogus.write_bytes(b"not a zip")
    assert cli.main(["verify", str(bogus)]) == 2
