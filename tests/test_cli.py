"""Tests for CLI commands.

轉檔程式以 fake_run fixture 取代，不需要實際安裝 Navisworks。
"""

import json
import logging

import pytest

from nwbatch.cli.main import app
from nwbatch.core.runner import PROGRAM_FILES_ENV, RUNNER_ENV


@pytest.fixture(autouse=True)
def cli_env(in_tmp, monkeypatch):
    """寬螢幕輸出並還原 root logger"""
    monkeypatch.setenv("COLUMNS", "250")
    monkeypatch.delenv(RUNNER_ENV, raising=False)
    for name in PROGRAM_FILES_ENV:
        monkeypatch.delenv(name, raising=False)

    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)


class TestScanCommand:
    """Tests for the scan command."""

    def test_scan_lists_groups(self, cli_runner, project):
        result = cli_runner.invoke(app, ["scan", str(project)])

        assert result.exit_code == 0
        assert "找到 4 個分組" in result.output
        assert "Arch" in result.output
        assert "Master.nwd" in result.output

    def test_scan_top_mode_with_files(self, cli_runner, project):
        result = cli_runner.invoke(app, ["scan", str(project), "--group", "top", "--files"])

        assert result.exit_code == 0
        assert "找到 3 個分組" in result.output
        assert "s.ifc" in result.output

    def test_scan_without_root(self, cli_runner):
        result = cli_runner.invoke(app, ["scan"])

        assert result.exit_code == 1
        assert "未指定根目錄" in result.output

    def test_scan_bad_group_mode(self, cli_runner, project):
        result = cli_runner.invoke(app, ["scan", str(project), "--group", "flat"])

        assert result.exit_code == 1
        assert "錯誤" in result.output

    def test_scan_unknown_extension(self, cli_runner, project):
        result = cli_runner.invoke(app, ["scan", str(project), "--ext", "rvt,xyz"])

        assert result.exit_code == 1
        assert ".xyz" in result.output


class TestConvertCommand:
    """Tests for the convert command."""

    def test_dry_run_does_not_invoke_runner(self, cli_runner, project, fake_run):
        result = cli_runner.invoke(app, ["convert", str(project), "--dry-run"])

        assert result.exit_code == 0
        assert "將要轉檔的分組" in result.output
        assert "a.rvt" in result.output
        assert fake_run.calls == []

    def test_root_named_like_master(self, cli_runner, tmp_path, runner_exe, fake_run):
        root = tmp_path.resolve() / "Master"
        (root / "Arch").mkdir(parents=True)
        (root / "Arch" / "a.rvt").write_text("x", encoding="utf-8")

        result = cli_runner.invoke(app, ["convert", str(root), "--runner", str(runner_exe), "--yes"])

        assert result.exit_code == 1
        assert "--master" in result.output
        assert fake_run.calls == []

        result = cli_runner.invoke(
            app, ["convert", str(root), "--runner", str(runner_exe), "--yes", "--master", "Federated"]
        )
        assert result.exit_code == 0
        assert (root / "Federated.nwd").exists()

    def test_convert_all(self, cli_runner, project, runner_exe, fake_run):
        result = cli_runner.invoke(app, ["convert", str(project), "--runner", str(runner_exe), "--yes"])

        assert result.exit_code == 0, result.output
        assert "轉檔完成" in result.output
        assert (project / "Arch" / "Arch.nwd").exists()
        assert (project / "Master.nwd").exists()
        assert len(fake_run.calls) == 5

    def test_convert_passes_version(self, cli_runner, project, runner_exe, fake_run):
        result = cli_runner.invoke(
            app,
            ["convert", str(project), "--runner", str(runner_exe), "--nwd-version", "2023", "--yes", "--no-assemble"],
        )

        assert result.exit_code == 0, result.output
        assert len(fake_run.calls) == 4
        assert all(call[call.index("/version") + 1] == "2023" for call in fake_run.calls)
        assert not (project / "Master.nwd").exists()

    def test_failed_group_sets_exit_code(self, cli_runner, project, runner_exe, fake_run):
        fake_run.fail = {"MEP"}

        result = cli_runner.invoke(app, ["convert", str(project), "--runner", str(runner_exe), "--yes"])

        assert result.exit_code == 1
        assert "失敗：1" in result.output
        assert (project / "Arch" / "Arch.nwd").exists()
        assert (project / "Master.nwd").exists()

    def test_everything_up_to_date(self, cli_runner, project, runner_exe, fake_run):
        cli_runner.invoke(app, ["convert", str(project), "--runner", str(runner_exe), "--yes"])
        calls = len(fake_run.calls)

        result = cli_runner.invoke(app, ["convert", str(project), "--runner", str(runner_exe), "--yes"])

        assert result.exit_code == 0
        assert "皆已是最新" in result.output
        assert len(fake_run.calls) == calls

    def test_confirmation_declined(self, cli_runner, project, runner_exe, fake_run):
        result = cli_runner.invoke(app, ["convert", str(project), "--runner", str(runner_exe)], input="n\n")

        assert result.exit_code == 0
        assert "已取消" in result.output
        assert fake_run.calls == []

    def test_runner_not_found(self, cli_runner, project, tmp_path):
        result = cli_runner.invoke(
            app,
            ["convert", str(project), "--runner", str(tmp_path / "missing.exe"), "--yes"],
        )

        assert result.exit_code == 1
        assert "不存在" in result.output

    def test_invalid_version(self, cli_runner, project):
        result = cli_runner.invoke(app, ["convert", str(project), "--nwd-version", "99"])

        assert result.exit_code == 1
        assert "無效的 NWD 版本" in result.output

    def test_no_matching_files(self, cli_runner, project):
        result = cli_runner.invoke(app, ["convert", str(project), "--ext", "skp"])

        assert result.exit_code == 0
        assert "找不到符合條件的來源檔案" in result.output

    def test_output_directory(self, cli_runner, project, runner_exe, fake_run, tmp_path):
        out = tmp_path / "out"

        result = cli_runner.invoke(
            app,
            ["convert", str(project), "-o", str(out), "--runner", str(runner_exe), "--yes", "-m", "Site"],
        )

        assert result.exit_code == 0, result.output
        assert (out / "Arch" / "Arch.nwd").exists()
        assert (out / "Site.nwd").exists()
        assert not (project / "Arch" / "Arch.nwd").exists()


class TestAssembleCommand:
    """Tests for the assemble command."""

    def test_assemble_without_submodels(self, cli_runner, project, runner_exe, fake_run):
        result = cli_runner.invoke(app, ["assemble", str(project), "--runner", str(runner_exe)])

        assert result.exit_code == 1
        assert "找不到任何已轉換的子模型" in result.output
        assert fake_run.calls == []

    def test_assemble_existing_submodels(self, cli_runner, project, runner_exe, fake_run):
        cli_runner.invoke(
            app,
            ["convert", str(project), "--runner", str(runner_exe), "--yes", "--no-assemble"],
        )

        result = cli_runner.invoke(app, ["assemble", str(project), "--runner", str(runner_exe)])

        assert result.exit_code == 0, result.output
        assert (project / "Master.nwd").exists()
        assert len(fake_run.manifests["Master"]) == 4


class TestConfigCommands:
    """Tests for init-config and --config."""

    def test_init_config_and_use_it(self, cli_runner, project, tmp_path, fake_run):
        config_path = tmp_path / "nwbatch.json"

        result = cli_runner.invoke(app, ["init-config", str(config_path), "--root", str(project)])
        assert result.exit_code == 0
        assert json.loads(config_path.read_text(encoding="utf-8"))["root_dir"] == str(project)

        result = cli_runner.invoke(app, ["scan", "--config", str(config_path)])
        assert result.exit_code == 0
        assert "找到 4 個分組" in result.output

    def test_init_config_refuses_overwrite(self, cli_runner, tmp_path):
        config_path = tmp_path / "nwbatch.json"
        config_path.write_text("{}", encoding="utf-8")

        result = cli_runner.invoke(app, ["init-config", str(config_path)])
        assert result.exit_code == 1

        result = cli_runner.invoke(app, ["init-config", str(config_path), "--force"])
        assert result.exit_code == 0

    def test_config_exclusions_apply(self, cli_runner, project, tmp_path):
        config_path = tmp_path / "nwbatch.json"
        config_path.write_text(
            json.dumps({"root_dir": str(project), "exclude_folders": ["MEP"]}),
            encoding="utf-8",
        )

        result = cli_runner.invoke(app, ["scan", "-c", str(config_path)])

        assert result.exit_code == 0
        assert "找到 2 個分組" in result.output


class TestLocateCommand:
    """Tests for the locate command."""

    def test_locate_explicit(self, cli_runner, runner_exe):
        result = cli_runner.invoke(app, ["locate", "--runner", str(runner_exe)])

        assert result.exit_code == 0
        assert "FileToolsTaskRunner.exe" in result.output

    def test_locate_program_files(self, cli_runner, tmp_path, monkeypatch):
        pf = tmp_path / "pf"
        exe = pf / "Autodesk" / "Navisworks Manage 2024" / "FileToolsTaskRunner.exe"
        exe.parent.mkdir(parents=True)
        exe.write_text("x", encoding="utf-8")
        monkeypatch.setenv("ProgramFiles", str(pf))
        monkeypatch.setenv("PATH", str(tmp_path / "nothing"))

        result = cli_runner.invoke(app, ["locate"])

        assert result.exit_code == 0
        assert "Navisworks Manage 2024" in result.output

    def test_locate_not_found(self, cli_runner, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path / "nothing"))

        result = cli_runner.invoke(app, ["locate"])

        assert result.exit_code == 1
        assert "找不到" in result.output
