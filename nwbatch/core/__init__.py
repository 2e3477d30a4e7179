"""核心轉檔模組"""

from nwbatch.core.orchestrator import BatchOrchestrator, BatchReport, BatchStats, GroupResult, GroupStatus, run_pipeline
from nwbatch.core.formats import NWD_EXTENSION, parse_extensions, validate_nwd_version
from nwbatch.core.scanner import FolderScanner, FileGroup
from nwbatch.core.manifest import write_manifest, read_manifest, build_group_manifest, build_master_manifest
from nwbatch.core.runner import TaskRunner, RunnerNotFoundError, find_task_runner, list_installations
from nwbatch.core.transfer import TransferStatus, transfer_result
from nwbatch.core.validation import validate_root_dir, validate_output_dir, validate_paths
from nwbatch.core.config import BatchConfig, load_config, save_config
from nwbatch.core.paths import get_config_dir

__all__ = [
    "BatchOrchestrator",
    "BatchReport",
    "BatchStats",
    "GroupResult",
    "GroupStatus",
    "run_pipeline",
    "NWD_EXTENSION",
    "parse_extensions",
    "validate_nwd_version",
    "FolderScanner",
    "FileGroup",
    "write_manifest",
    "read_manifest",
    "build_group_manifest",
    "build_master_manifest",
    "TaskRunner",
    "RunnerNotFoundError",
    "find_task_runner",
    "list_installations",
    "TransferStatus",
    "transfer_result",
    "validate_root_dir",
    "validate_output_dir",
    "validate_paths",
    "BatchConfig",
    "load_config",
    "save_config",
    "get_config_dir",
]
