"""Tests for the `livepatch` command line interface."""

import sys
import uuid

import pytest

from live_patcher.cli import EXIT_ERROR, EXIT_OK, EXIT_RESTART_REQUIRED, main


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    module = f"livepatch_cli_{uuid.uuid4().hex}"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LIVEPATCH_DEFAULT_MODULE", module)
    monkeypatch.delenv("LIVEPATCH_CAPABILITY", raising=False)
    monkeypatch.delenv("LIVEPATCH_DIFF_BACKEND", raising=False)
    yield module
    sys.modules.pop(module, None)


def _fragment(tmp_path, name, source):
    path = tmp_path / name
    path.write_text(source, encoding="utf-8")
    return str(path)


class TestApply:
    def test_apply_and_export(self, tmp_path, isolated):
        first = _fragment(tmp_path, "one.py",
                          "class Counter:\n    def step(self):\n        return 1\n")
        second = _fragment(tmp_path, "two.py",
                           "class Counter:\n    def step(self):\n        return 2\n")

        code = main(["apply", first, second,
                     "--pending", "out/pending.py",
                     "--original", "out/original.py",
                     "--diff", "out/patch.diff"])

        assert code == EXIT_OK
        assert "return 2" in (tmp_path / "out" / "pending.py").read_text(encoding="utf-8")
        assert "return 1" in (tmp_path / "out" / "original.py").read_text(encoding="utf-8")
        diff = (tmp_path / "out" / "patch.diff").read_text(encoding="utf-8")
        assert "-        return 1" in diff
        assert "+        return 2" in diff
        assert sys.modules[isolated].Counter().step() == 2

    def test_strict_without_live_capability(self, tmp_path, capsys):
        path = _fragment(tmp_path, "f.py", "def fn():\n    return 1\n")

        assert main(["apply", path, "--no-live", "--strict"]) == EXIT_RESTART_REQUIRED
        assert "Needs restart:    YES" in capsys.readouterr().out

    def test_restart_is_not_an_error_without_strict(self, tmp_path):
        path = _fragment(tmp_path, "f.py", "def fn():\n    return 1\n")
        assert main(["apply", path, "--no-live"]) == EXIT_OK

    def test_strict_with_live_capability(self, tmp_path):
        path = _fragment(tmp_path, "f.py", "def fn():\n    return 1\n")
        assert main(["apply", path, "--strict"]) == EXIT_OK

    def test_namespace_option(self, tmp_path):
        namespace = f"livepatch_cli_ns_{uuid.uuid4().hex}"
        path = _fragment(tmp_path, "f.py", "def fn():\n    return 'ns'\n")
        try:
            assert main(["apply", path, "--namespace", namespace, "--pending", "p.py"]) == EXIT_OK
            assert sys.modules[namespace].fn() == "ns"
            assert (tmp_path / "p.py").read_text(encoding="utf-8").startswith(
                f"# namespace: {namespace}")
        finally:
            sys.modules.pop(namespace, None)

    def test_show_diff(self, tmp_path, capsys):
        first = _fragment(tmp_path, "a.py", "def fn():\n    return 1\n")
        second = _fragment(tmp_path, "b.py", "def fn():\n    return 2\n")

        main(["apply", first, second, "--show-diff", "--no-color"])
        out = capsys.readouterr().out
        assert "--- original" in out
        assert "+    return 2" in out


class TestErrors:
    def test_parse_error(self, tmp_path, capsys):
        path = _fragment(tmp_path, "bad.py", "def fn(:\n")
        assert main(["apply", path]) == EXIT_ERROR
        assert "bad.py" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        assert main(["apply", str(tmp_path / "missing.py")]) == EXIT_ERROR
        assert "Cannot read" in capsys.readouterr().err

    def test_no_command(self, capsys):
        assert main([]) == EXIT_ERROR
        assert "usage" in capsys.readouterr().out.lower()
