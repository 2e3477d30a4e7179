"""FileToolsTaskRunner 尋找與呼叫"""

import logging
import os
import re
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

RUNNER_EXE = "FileToolsTaskRunner.exe"
RUNNER_ENV = "NWBATCH_RUNNER"

# Program Files 環境變數（依優先順序）
PROGRAM_FILES_ENV = ("ProgramW6432", "ProgramFiles", "ProgramFiles(x86)")

_INSTALL_PATTERN = re.compile(r"^Navisworks (Manage|Simulate) (\d{4})$", re.IGNORECASE)


class RunnerNotFoundError(RuntimeError):
    """找不到 FileToolsTaskRunner"""


@dataclass(frozen=True)
class RunnerInstallation:
    """已安裝的 Navisworks"""

    product: str
    year: int
    executable: Path

    @property
    def display_name(self) -> str:
        return f"Navisworks {self.product} {self.year}"


@dataclass
class InvocationResult:
    """單次呼叫結果"""

    command: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def _program_files_roots() -> list[Path]:
    roots: list[Path] = []
    for name in PROGRAM_FILES_ENV:
        value = os.environ.get(name)
        if value and Path(value) not in roots:
            roots.append(Path(value))
    return roots


def list_installations() -> list[RunnerInstallation]:
    """列出 Program Files 下的 Navisworks 安裝（新版在前）"""
    installations: list[RunnerInstallation] = []
    for root in _program_files_roots():
        autodesk = root / "Autodesk"
        if not autodesk.is_dir():
            continue
        for entry in autodesk.iterdir():
            match = _INSTALL_PATTERN.match(entry.name)
            if not match:
                continue
            exe = entry / RUNNER_EXE
            if exe.is_file():
                installations.append(
                    RunnerInstallation(
                        product=match.group(1).capitalize(),
                        year=int(match.group(2)),
                        executable=exe,
                    )
                )

    # Manage 優先於 Simulate
    installations.sort(key=lambda i: (-i.year, i.product != "Manage"))
    return installations


def _resolve_candidate(candidate: Path) -> Path | None:
    if candidate.is_dir():
        candidate = candidate / RUNNER_EXE
    return candidate if candidate.is_file() else None


def find_task_runner(explicit: Path | str | None = None, version: str = "") -> Path:
    """尋找 FileToolsTaskRunner.exe

    搜尋順序：明確指定 → NWBATCH_RUNNER 環境變數 → PATH → Program Files。

    Args:
        explicit: 明確指定的執行檔或其所在目錄
        version: 偏好的 Navisworks 版本（年份），僅影響 Program Files 搜尋

    Returns:
        執行檔路徑

    Raises:
        RunnerNotFoundError: 找不到執行檔
    """
    if explicit:
        found = _resolve_candidate(Path(explicit))
        if found is None:
            raise RunnerNotFoundError(f"指定的轉檔程式不存在: {explicit}")
        logger.debug(f"使用指定的轉檔程式：{found}")
        return found

    env_value = os.environ.get(RUNNER_ENV)
    if env_value:
        found = _resolve_candidate(Path(env_value))
        if found is not None:
            logger.debug(f"使用 {RUNNER_ENV} 指定的轉檔程式：{found}")
            return found
        logger.warning(f"{RUNNER_ENV} 指向的轉檔程式不存在：{env_value}")

    on_path = shutil.which(RUNNER_EXE) or shutil.which(Path(RUNNER_EXE).stem)
    if on_path:
        logger.debug(f"於 PATH 找到轉檔程式：{on_path}")
        return Path(on_path)

    installations = list_installations()
    if version:
        preferred = [i for i in installations if str(i.year) == version]
        installations = preferred + [i for i in installations if i not in preferred]
    if installations:
        chosen = installations[0]
        logger.debug(f"使用 {chosen.display_name}：{chosen.executable}")
        return chosen.executable

    raise RunnerNotFoundError(
        f"找不到 {RUNNER_EXE}，請安裝 Navisworks Manage/Simulate，"
        f"或以 --runner / {RUNNER_ENV} 指定路徑"
    )


class TaskRunner:
    """FileToolsTaskRunner 呼叫器"""

    def __init__(
        self,
        executable: Path | str,
        timeout: int = 3600,
        version: str = "",
        overwrite: bool = True,
    ):
        """
        Args:
            executable: FileToolsTaskRunner.exe 路徑
            timeout: 單次呼叫逾時秒數
            version: 輸出 NWD 版本（年份），空字串表示轉檔程式預設值
            overwrite: 是否覆寫既有輸出
        """
        self.executable = Path(executable)
        self.timeout = timeout
        self.version = version
        self.overwrite = overwrite

    def build_command(
        self,
        manifest: Path,
        output: Path,
        log_file: Path | None = None,
    ) -> list[str]:
        """組合命令列參數"""
        command = [str(self.executable), "/i", str(manifest), "/of", str(output)]
        if self.overwrite:
            command.append("/over")
        if self.version:
            command.extend(["/version", self.version])
        if log_file is not None:
            command.extend(["/log", str(log_file)])
        return command

    def run(
        self,
        manifest: Path,
        output: Path,
        log_file: Path | None = None,
    ) -> InvocationResult:
        """
        執行一次轉檔

        逾時不會拋出例外，而是回傳 timed_out=True 的結果。

        Raises:
            RunnerNotFoundError: 執行檔在執行時不存在或無法啟動
        """
        command = self.build_command(manifest, output, log_file)
        logger.debug(f"執行：{subprocess.list2cmdline(command)}")

        start = time.perf_counter()
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            elapsed = time.perf_counter() - start
            logger.error(f"轉檔逾時（{self.timeout} 秒）：{output.name}")
            return InvocationResult(
                command=command,
                returncode=-1,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                timed_out=True,
                elapsed=elapsed,
            )
        except OSError as e:
            raise RunnerNotFoundError(f"無法啟動轉檔程式 {self.executable}: {e}") from e

        elapsed = time.perf_counter() - start
        result = InvocationResult(
            command=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            elapsed=elapsed,
        )
        if not result.ok:
            logger.debug(f"轉檔程式回傳 {result.returncode}：{result.stderr.strip()}")
        return result


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data
