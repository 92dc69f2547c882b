"""Unit tests for lint command selection, execution and output parsing."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from harbor.errors import TimeoutExceededError
from harbor.managers.workspace import linter as linter_mod
from harbor.managers.workspace.linter import Linter, parse_lint_output, select_lint_command


def _which_none(_name: str) -> None:
    return None


class TestSelectLintCommand:
    def test_prefers_package_scripts(self, tmp_path: Path):
        (tmp_path / "package.json").write_text(
            json.dumps({"scripts": {"check": "tsc", "lint": "eslint ."}})
        )
        assert select_lint_command(tmp_path, _which_none) == ["npm", "run", "lint"]

    def test_falls_back_to_installed_tool(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{}")

        def which(name: str) -> str | None:
            return "/usr/bin/tsc" if name == "tsc" else None

        assert select_lint_command(tmp_path, which) == ["tsc", "--noEmit"]

    def test_local_node_modules_binary(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{}")
        bin_dir = tmp_path / "node_modules" / ".bin"
        bin_dir.mkdir(parents=True)
        (bin_dir / "prettier").write_text("")

        command = select_lint_command(tmp_path, _which_none)

        assert command == [str(bin_dir / "prettier"), "--check", "."]

    def test_nothing_available(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{}")
        assert select_lint_command(tmp_path, _which_none) is None


class TestParseLintOutput:
    def test_eslint_unix(self):
        issues = parse_lint_output(
            "src/app.js:3:5: 'foo' is not defined. [Error/no-undef]\n"
            "src/app.js:7:1: Unexpected console statement. [Warning/no-console]\n"
            "\n2 problems\n"
        )

        assert [(i.file, i.line, i.column, i.type) for i in issues] == [
            ("src/app.js", 3, 5, "error"),
            ("src/app.js", 7, 1, "warning"),
        ]
        assert issues[0].message == "'foo' is not defined."

    def test_eslint_compact(self):
        issues = parse_lint_output(
            "/app/src/a.js: line 2, col 10, Warning - Missing semicolon. (semi)"
        )
        assert issues[0].line == 2
        assert issues[0].column == 10
        assert issues[0].type == "warning"

    def test_typescript(self):
        issues = parse_lint_output(
            "src/index.ts(12,7): error TS2322: Type 'string' is not assignable to type 'number'."
        )
        assert issues[0].file == "src/index.ts"
        assert (issues[0].line, issues[0].column) == (12, 7)
        assert issues[0].message.startswith("TS2322")

    def test_noise_is_ignored(self):
        assert parse_lint_output("> project@1.0.0 lint\n> eslint .\n") == []


class _HangingProcess:
    returncode = None

    def __init__(self) -> None:
        self.killed = False

    async def communicate(self):
        await asyncio.sleep(10)

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    async def wait(self) -> int:
        return -9


class _FinishedProcess:
    def __init__(self, stdout: bytes, returncode: int) -> None:
        self._stdout = stdout
        self.returncode = returncode

    async def communicate(self):
        return self._stdout, b""


class TestLinter:
    async def test_without_package_json(self, tmp_path: Path):
        result = await Linter(tmp_path).run()
        assert result.success is False
        assert "package.json" in result.error

    async def test_runs_and_parses(self, tmp_path: Path, monkeypatch):
        (tmp_path / "package.json").write_text(json.dumps({"scripts": {"lint": "eslint ."}}))
        seen: dict = {}

        async def fake_exec(*cmd, **kwargs):
            seen["cmd"] = cmd
            seen["cwd"] = kwargs["cwd"]
            return _FinishedProcess(b"a.js:1:1: Bad thing [Error/x]\n", 1)

        monkeypatch.setattr(linter_mod.asyncio, "create_subprocess_exec", fake_exec)

        result = await Linter(tmp_path, which=_which_none).run()

        assert seen["cmd"] == ("npm", "run", "lint")
        assert seen["cwd"] == str(tmp_path)
        assert result.success is False
        assert result.exit_code == 1
        assert result.errors == 1
        assert result.issues[0].file == "a.js"

    async def test_timeout_kills_process(self, tmp_path: Path, monkeypatch):
        (tmp_path / "package.json").write_text(json.dumps({"scripts": {"lint": "eslint ."}}))
        proc = _HangingProcess()

        async def fake_exec(*cmd, **kwargs):
            return proc

        monkeypatch.setattr(linter_mod.asyncio, "create_subprocess_exec", fake_exec)

        with pytest.raises(TimeoutExceededError):
            await Linter(tmp_path, timeout=0.05, which=_which_none).run()
        assert proc.killed is True
