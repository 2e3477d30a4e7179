"""批次轉檔流程核心

流程：掃描 → 建立清單 → 呼叫轉檔程式 → 搬移結果 → 清理暫存。
單一分組失敗（轉檔失敗、逾時、目的檔被鎖定）不會中斷整批作業；
找不到轉檔程式則視為致命錯誤。
"""

import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Protocol

from nwbatch.core.formats import NWD_EXTENSION
from nwbatch.core.manifest import build_group_manifest, build_master_manifest
from nwbatch.core.paths import STAGING_PREFIX
from nwbatch.core.runner import InvocationResult, TaskRunner
from nwbatch.core.scanner import FileGroup
from nwbatch.core.transfer import TransferStatus, is_locked, transfer_result

logger = logging.getLogger(__name__)


class GroupStatus(Enum):
    """分組轉檔狀態"""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    LOCKED = "locked"  # 轉檔成功，但目的檔被鎖定而另存


@dataclass
class GroupResult:
    """分組轉檔結果"""

    name: str
    status: GroupStatus
    output_path: Path | None = None
    message: str = ""
    returncode: int = 0
    elapsed: float = 0.0


@dataclass
class BatchStats:
    """批次統計結果"""

    success: int = 0
    skipped: int = 0
    failed: int = 0
    locked: int = 0

    @classmethod
    def from_results(cls, results: list[GroupResult]) -> "BatchStats":
        """從轉檔結果建立統計"""
        stats = cls()
        for result in results:
            if result.status == GroupStatus.SUCCESS:
                stats.success += 1
            elif result.status == GroupStatus.SKIPPED:
                stats.skipped += 1
            elif result.status == GroupStatus.LOCKED:
                stats.locked += 1
            else:
                stats.failed += 1
        return stats

    @property
    def total(self) -> int:
        return self.success + self.skipped + self.failed + self.locked

    def format_summary(self) -> str:
        """格式化摘要字串"""
        summary = f"成功: {self.success}, 略過: {self.skipped}, 失敗: {self.failed}"
        if self.locked:
            summary += f", 被鎖定另存: {self.locked}"
        return summary


@dataclass
class BatchReport:
    """整批作業報告"""

    results: list[GroupResult] = field(default_factory=list)
    master: GroupResult | None = None
    staging_dir: Path | None = None

    @property
    def stats(self) -> BatchStats:
        return BatchStats.from_results(self.results)

    @property
    def has_failures(self) -> bool:
        if self.stats.failed:
            return True
        return self.master is not None and self.master.status == GroupStatus.FAILED


class ProgressCallback(Protocol):
    """進度回呼介面"""

    def __call__(
        self,
        current: int,
        total: int,
        group: FileGroup,
        status: GroupStatus | None,
    ) -> None:
        """
        進度回呼

        Args:
            current: 目前處理到第幾個（1-based）
            total: 總分組數
            group: 目前處理的分組
            status: 處理結果（None 表示尚未處理完）
        """
        ...


def _failure_message(invocation: InvocationResult) -> str:
    if invocation.timed_out:
        return "轉檔逾時"
    detail = invocation.stderr.strip().splitlines()
    message = f"轉檔程式回傳錯誤碼 {invocation.returncode}"
    if detail:
        message += f": {detail[-1]}"
    return message


def master_needs_assembly(master_path: Path, nwd_paths: Iterable[Path]) -> bool:
    """判斷總模型是否需要重新組合（不存在或比任一子模型舊）"""
    if not master_path.exists():
        return True
    master_mtime = master_path.stat().st_mtime
    return any(p.exists() and p.stat().st_mtime > master_mtime for p in nwd_paths)


class BatchOrchestrator:
    """批次轉檔協調器

    以 context manager 管理暫存目錄：進入時建立，離開時清除。
    暫存目錄建立在輸出位置所在的磁碟，讓搬移成為同磁碟的重新命名。
    """

    def __init__(
        self,
        runner: TaskRunner,
        staging_parent: Path | str,
        keep_staging: bool = False,
    ):
        """
        Args:
            runner: 轉檔程式呼叫器
            staging_parent: 建立暫存目錄的位置
            keep_staging: 結束時是否保留暫存目錄（清單與轉檔日誌）
        """
        self.runner = runner
        self.staging_parent = Path(staging_parent)
        self.keep_staging = keep_staging
        self.staging_dir: Path | None = None
        self._retain = False

    def __enter__(self) -> "BatchOrchestrator":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()

    def open(self) -> Path:
        """建立暫存目錄"""
        if self.staging_dir is None:
            self.staging_parent.mkdir(parents=True, exist_ok=True)
            self.staging_dir = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=self.staging_parent))
            logger.debug(f"已建立暫存目錄：{self.staging_dir}")
        return self.staging_dir

    def cleanup(self) -> None:
        """清除暫存目錄

        若有輸出無法搬出暫存區，保留目錄以免遺失結果。
        """
        if self.staging_dir is None:
            return
        if self.keep_staging or self._retain:
            logger.info(f"保留暫存目錄：{self.staging_dir}")
        else:
            try:
                shutil.rmtree(self.staging_dir)
                logger.debug(f"已清除暫存目錄：{self.staging_dir}")
            except OSError as e:
                logger.warning(f"清除暫存目錄時發生錯誤: {e}")
        self.staging_dir = None

    def _invoke(self, name: str, manifest: Path, destination: Path) -> GroupResult:
        staging = self.open()
        staged_output = staging / (manifest.stem + NWD_EXTENSION)
        log_file = staging / (manifest.stem + ".log")

        if is_locked(destination):
            logger.warning(f"{destination.name} 目前被開啟，完成後將另存新檔")

        invocation = self.runner.run(manifest, staged_output, log_file)

        if not invocation.ok:
            message = _failure_message(invocation)
            logger.error(f"轉檔失敗: {name} ({message})")
            return GroupResult(
                name=name,
                status=GroupStatus.FAILED,
                message=message,
                returncode=invocation.returncode,
                elapsed=invocation.elapsed,
            )

        if not staged_output.exists():
            logger.error(f"轉檔程式未產生輸出: {name}")
            return GroupResult(
                name=name,
                status=GroupStatus.FAILED,
                message="轉檔程式未產生輸出",
                returncode=invocation.returncode,
                elapsed=invocation.elapsed,
            )

        outcome = transfer_result(staged_output, destination)
        if outcome.status == TransferStatus.MOVED:
            logger.info(f"已轉檔: {name} -> {destination}")
            status = GroupStatus.SUCCESS
            message = "轉檔成功"
        elif outcome.status == TransferStatus.FALLBACK:
            status = GroupStatus.LOCKED
            message = outcome.message
        else:
            self._retain = True
            status = GroupStatus.FAILED
            message = outcome.message

        return GroupResult(
            name=name,
            status=status,
            output_path=outcome.path,
            message=message,
            returncode=invocation.returncode,
            elapsed=invocation.elapsed,
        )

    def convert_group(self, group: FileGroup) -> GroupResult:
        """
        轉換單一分組

        Args:
            group: 轉檔分組

        Returns:
            轉檔結果
        """
        logger.debug(f"開始轉檔：{group.relative_folder}（{len(group.files)} 個檔案）")
        try:
            manifest = build_group_manifest(group, self.open())
        except (ValueError, OSError) as e:
            logger.error(f"建立檔案清單失敗: {group.name}: {e}")
            return GroupResult(name=group.name, status=GroupStatus.FAILED, message=str(e))

        return self._invoke(group.name, manifest, group.output_path)

    def _needs_conversion(self, group: FileGroup) -> bool:
        try:
            return group.needs_conversion()
        except OSError as e:
            logger.warning(f"無法判斷 {group.relative_folder} 是否為最新，重新轉檔: {e}")
            return True

    def convert_batch(
        self,
        groups: list[FileGroup],
        on_progress: ProgressCallback | None = None,
        skip_up_to_date: bool = True,
    ) -> list[GroupResult]:
        """
        批次轉檔

        Args:
            groups: 轉檔分組清單
            on_progress: 進度回呼函數
            skip_up_to_date: 是否略過輸出已是最新的分組

        Returns:
            所有分組的轉檔結果
        """
        results: list[GroupResult] = []
        total = len(groups)

        for idx, group in enumerate(groups, start=1):
            if on_progress:
                on_progress(idx, total, group, None)

            if skip_up_to_date and not self._needs_conversion(group):
                result = GroupResult(
                    name=group.name,
                    status=GroupStatus.SKIPPED,
                    output_path=group.output_path,
                    message="輸出檔案已是最新",
                )
            else:
                result = self.convert_group(group)

            results.append(result)

            if on_progress:
                on_progress(idx, total, group, result.status)

        return results

    def assemble(self, master_path: Path, nwd_paths: Iterable[Path]) -> GroupResult:
        """
        將子模型組合為總模型

        Args:
            master_path: 總模型輸出路徑
            nwd_paths: 子模型 NWD 路徑

        Returns:
            組合結果
        """
        name = master_path.stem
        try:
            manifest = build_master_manifest(nwd_paths, self.open(), name)
        except (ValueError, OSError) as e:
            logger.error(f"無法組合總模型: {e}")
            return GroupResult(name=name, status=GroupStatus.FAILED, message=str(e))

        logger.info(f"組合總模型：{master_path}")
        return self._invoke(name, manifest, master_path)


def collect_submodels(groups: list[FileGroup], results: list[GroupResult]) -> list[Path]:
    """取得要組合的子模型路徑

    被鎖定而另存的分組使用新產生的檔案。
    """
    paths: list[Path] = []
    for group, result in zip(groups, results):
        if result.status == GroupStatus.LOCKED and result.output_path:
            paths.append(result.output_path)
        else:
            paths.append(group.output_path)
    return paths


def run_pipeline(
    groups: list[FileGroup],
    master_path: Path,
    runner: TaskRunner,
    staging_parent: Path,
    on_progress: ProgressCallback | None = None,
    skip_up_to_date: bool = True,
    assemble: bool = True,
    keep_staging: bool = False,
) -> BatchReport:
    """執行完整流程：轉換所有分組後組合總模型"""
    report = BatchReport()
    with BatchOrchestrator(runner, staging_parent, keep_staging=keep_staging) as orchestrator:
        report.staging_dir = orchestrator.staging_dir
        report.results = orchestrator.convert_batch(
            groups,
            on_progress=on_progress,
            skip_up_to_date=skip_up_to_date,
        )

        if assemble:
            submodels = collect_submodels(groups, report.results)
            if skip_up_to_date and not master_needs_assembly(master_path, submodels):
                report.master = GroupResult(
                    name=master_path.stem,
                    status=GroupStatus.SKIPPED,
                    output_path=master_path,
                    message="總模型已是最新",
                )
            else:
                report.master = orchestrator.assemble(master_path, submodels)

    logger.info(f"批次完成：{report.stats.format_summary()}")
    return report
