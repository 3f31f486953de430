import io
import json

import pytest

from moscope.cli import build_parser, main


class _Terminal(io.StringIO):
    def isatty(self):
        return True


def _exit_code(argv):
    with pytest.raises(SystemExit) as info:
        main(argv)
    return info.value.code


def test_text_report(executable_path, capsys):
    main([str(executable_path)])
    out = capsys.readouterr().out
    assert "Architecture 0: ARM64 (arm64)" in out
    assert "/usr/lib/libSystem.B.dylib" in out


def test_json_report(executable_path, capsys):
    main([str(executable_path), "--json", "--strings", "--string-pattern", "^https?://"])
    data = json.loads(capsys.readouterr().out)
    arch = data["architectures"][0]
    assert [s["value"] for s in arch["strings"]] == ["https://example.com/a", "http://example.org"]


def test_json_for_fat_includes_every_slice(fat_path, capsys):
    main([str(fat_path), "--json", "--no-symbols"])
    data = json.loads(capsys.readouterr().out)
    assert data["is_fat"] is True
    assert len(data["architectures"]) == 2
    assert data["architectures"][0]["symbols"] is None


def test_arch_selects_one_slice(fat_path, capsys):
    main([str(fat_path), "--arch", "1", "--json"])
    data = json.loads(capsys.readouterr().out)
    assert [a["index"] for a in data["architectures"]] == [1]
    assert data["architectures"][0]["cpu_subtype"] == "arm64e"


def test_arch_out_of_range(fat_path, capsys):
    assert _exit_code([str(fat_path), "--arch", "5"]) == 1
    assert "ERROR:" in capsys.readouterr().err


def test_fat_without_arch_when_not_interactive(fat_path, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    assert _exit_code([str(fat_path)]) == 1
    assert "--arch" in capsys.readouterr().err


def test_interactive_architecture_prompt(fat_path, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", _Terminal())
    monkeypatch.setattr("builtins.input", lambda prompt: "0")
    main([str(fat_path), "--no-symbols"])
    out = capsys.readouterr().out
    assert "Found 2 architectures:" in out
    assert "  1: ARM64 (arm64e)" in out
    assert "Architecture 0: x86_64 (x86_64)" in out


def test_interactive_prompt_rejects_bad_answer(fat_path, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", _Terminal())
    monkeypatch.setattr("builtins.input", lambda prompt: "arm64")
    assert _exit_code([str(fat_path)]) == 1
    assert "ERROR:" in capsys.readouterr().err


def test_all_archs(fat_path, capsys):
    main([str(fat_path), "--all-archs", "--no-symbols"])
    out = capsys.readouterr().out
    assert "Architecture 0: x86_64 (x86_64)" in out
    assert "Architecture 1: ARM64 (arm64e)" in out


def test_bad_pattern_fails_before_decoding(tmp_path, capsys):
    # The input does not even exist: the pattern is checked first
    assert _exit_code([str(tmp_path / "nope"), "--strings", "--string-pattern", "(["]) == 1
    assert "pattern" in capsys.readouterr().err


def test_missing_file(tmp_path, capsys):
    assert _exit_code([str(tmp_path / "nope")]) == 1
    assert "ERROR:" in capsys.readouterr().err


def test_not_a_macho(tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"just some text, not a binary")
    assert _exit_code([str(path)]) == 1
    assert "ERROR:" in capsys.readouterr().err


def test_output_file(executable_path, tmp_path):
    json_path = tmp_path / "report.json"
    main([str(executable_path), "--json", "-o", str(json_path)])
    assert json.loads(json_path.read_text())["architectures"][0]["index"] == 0

    text_path = tmp_path / "report.txt"
    main([str(executable_path), "-o", str(text_path)])
    assert "Mach-O Header" in text_path.read_text(encoding="utf-8")


def test_config_file_is_used(executable_path, tmp_path, capsys):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"showDylibs": False, "showStrings": True}))
    main([str(executable_path), "--json", "--config", str(config)])
    arch = json.loads(capsys.readouterr().out)["architectures"][0]
    assert arch["dylibs"] is None
    assert arch["strings"] is not None


def test_arch_and_all_archs_are_exclusive():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["x", "--arch", "0", "--all-archs"])


def test_negative_max_symbols_fails_before_decoding(tmp_path, capsys):
    assert _exit_code([str(tmp_path / "nope"), "--json", "--max-symbols", "-1"]) == 1
    assert "symbol count" in capsys.readouterr().err


def test_max_symbols_limits_json(executable_path, capsys):
    main([str(executable_path), "--json", "--max-symbols", "0"])
    assert json.loads(capsys.readouterr().out)["architectures"][0]["symbols"] == []
