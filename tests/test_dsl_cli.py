"""
Tests for the bitpolicy command line interface.
"""

import io
import json

import pytest

from bitpolicy.dsl.__main__ import main

KEY_A = "029ffbe722b147f3035c87cb1c60b9a5947dd49c774cc31e94773478711a929ac0"


@pytest.fixture
def write_source(tmp_path):
    """Write a program file and return its path as a string."""
    def _write(text, name="program.pol"):
        path = tmp_path / name
        path.write_text(text)
        return str(path)
    return _write


class TestRunCommand:
    """bitpolicy run"""

    def test_run_policy(self, write_source, capsys):
        path = write_source("pk(A) || older(2 weeks)")
        assert main(["run", "--demo", path]) == 0
        out = capsys.readouterr().out
        assert "policy: or(" in out
        assert "descriptor: wsh(" in out
        assert "address: bc1q" in out

    def test_run_network(self, write_source, capsys):
        path = write_source("pk(A)")
        assert main(["run", "--demo", "--network", "test", path]) == 0
        assert "address: tb1q" in capsys.readouterr().out

    def test_run_json(self, write_source, capsys):
        path = write_source("pk(A)")
        assert main(["run", "--demo", "--json", path]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["kind"] == "policy"
        assert data["policy"] == f"pk({KEY_A})"

    def test_run_plain_value(self, write_source, capsys):
        path = write_source("1 + 2")
        assert main(["run", path]) == 0
        assert capsys.readouterr().out.strip() == "value: 3"

    def test_run_debug(self, write_source, capsys):
        path = write_source("[1]")
        assert main(["run", "--debug", path]) == 0
        assert "Value(array" in capsys.readouterr().out

    def test_run_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("true && false"))
        assert main(["run", "-"]) == 0
        assert "value: false" in capsys.readouterr().out

    def test_run_with_library(self, write_source, capsys):
        lib = write_source("fn backup(k) = pk(k) && older(1 week);", "lib.pol")
        path = write_source("pk(A) || backup(B)")
        assert main(["run", "--demo", "--lib", lib, path]) == 0
        assert "older(" in capsys.readouterr().out

    def test_run_with_config(self, write_source, tmp_path, capsys):
        config = tmp_path / "settings.yaml"
        config.write_text("network: signet\ndemo: true\n")
        path = write_source("pk(A)")
        assert main(["run", "--config", str(config), path]) == 0
        assert "address: tb1q" in capsys.readouterr().out

    def test_run_bad_config(self, write_source, tmp_path, capsys):
        config = tmp_path / "settings.yaml"
        config.write_text("colour: blue\n")
        assert main(["run", "--config", str(config), write_source("1")]) == 1
        assert "colour" in capsys.readouterr().err

    def test_run_ast(self, write_source, capsys):
        path = write_source("pk(A)")
        assert main(["run", "--ast", path]) == 0
        assert "Call" in capsys.readouterr().out

    def test_run_evaluation_error(self, write_source, capsys):
        path = write_source("fn f(a) = a; f()")
        assert main(["run", path]) == 1
        err = capsys.readouterr().err
        assert "in call to f" in err
        assert "[E405]" in err

    def test_run_syntax_error(self, write_source, capsys):
        assert main(["run", write_source("pk(")]) == 1
        assert "E102" in capsys.readouterr().err

    def test_run_missing_file(self, tmp_path, capsys):
        assert main(["run", str(tmp_path / "nope.pol")]) == 1
        assert "File not found" in capsys.readouterr().err


class TestCheckCommand:
    """bitpolicy check"""

    def test_check_ok(self, write_source, capsys):
        path = write_source("a = 1; fn f() = a;")
        assert main(["check", path]) == 0
        out = capsys.readouterr().out
        assert out.startswith("OK: ")
        assert "2 statement(s), no final expression" in out

    def test_check_does_not_evaluate(self, write_source):
        assert main(["check", write_source("undefined_thing(1)")]) == 0

    def test_check_error(self, write_source, capsys):
        assert main(["check", write_source("a = ;")]) == 1
        assert "E103" in capsys.readouterr().err


class TestFunctionsCommand:
    """bitpolicy functions"""

    def test_list(self, capsys):
        assert main(["functions"]) == 0
        out = capsys.readouterr().out
        assert "policy:" in out
        assert "  pk(key)" in out
        assert "OP_*" in out

    def test_describe(self, capsys):
        assert main(["functions", "thresh"]) == 0
        assert "[policy]" in capsys.readouterr().out

    def test_unknown(self, capsys):
        assert main(["functions", "nope"]) == 1
        assert "Unknown function" in capsys.readouterr().err
