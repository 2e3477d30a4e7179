"""共用測試 fixtures"""

import os
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from nwbatch.core.manifest import read_manifest


def touch(path: Path, mtime: float | None = None, content: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def project(tmp_path) -> Path:
    """範例專案：

    project/
      site.dwg
      Arch/a.rvt, Arch/b.rvt
      MEP/m.dwg, MEP/Sub/s.ifc
      Docs/readme.txt
      ~$a.rvt
    """
    root = tmp_path.resolve() / "project"
    touch(root / "site.dwg")
    touch(root / "Arch" / "a.rvt")
    touch(root / "Arch" / "b.rvt")
    touch(root / "MEP" / "m.dwg")
    touch(root / "MEP" / "Sub" / "s.ifc")
    touch(root / "Docs" / "readme.txt")
    touch(root / "~$a.rvt")
    return root


@pytest.fixture
def runner_exe(tmp_path) -> Path:
    return touch(tmp_path.resolve() / "bin" / "FileToolsTaskRunner.exe")


class FakeTaskRunner:
    """模擬 FileToolsTaskRunner：把清單內容寫入輸出檔"""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.manifests: dict[str, list[Path]] = {}
        self.fail: set[str] = set()
        self.skip_output: set[str] = set()

    def __call__(self, command, **kwargs):
        self.calls.append(command)
        manifest = Path(command[command.index("/i") + 1])
        output = Path(command[command.index("/of") + 1])
        entries = read_manifest(manifest)
        self.manifests[output.stem] = entries

        if output.stem in self.fail:
            return subprocess.CompletedProcess(command, 3, "", "Error: cannot read file\n")
        if output.stem not in self.skip_output:
            output.write_text("\n".join(str(e) for e in entries), encoding="utf-8")
        return subprocess.CompletedProcess(command, 0, "", "")


@pytest.fixture
def fake_run():
    fake = FakeTaskRunner()
    with patch("nwbatch.core.runner.subprocess.run", side_effect=fake):
        yield fake


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    """在暫存目錄執行（日誌與設定目錄建立於此）"""
    monkeypatch.chdir(tmp_path)
    return tmp_path
