"""檔案掃描與分組模組"""

import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from nwbatch.core.config import GROUP_MODE_FOLDER, GROUP_MODE_TOP, VALID_GROUP_MODES
from nwbatch.core.formats import DEFAULT_EXTENSIONS, NWD_EXTENSION
from nwbatch.core.paths import STAGING_PREFIX
from nwbatch.core.transfer import is_fallback_of

logger = logging.getLogger(__name__)

# 略過的暫存/備份檔
_IGNORED_SUFFIXES = {".bak", ".tmp"}


@dataclass
class FileGroup:
    """轉檔分組：同一資料夾的來源檔案，輸出為一個 NWD"""

    folder: Path
    name: str
    output_path: Path
    files: list[Path] = field(default_factory=list)
    root_dir: Path | None = None

    @property
    def relative_folder(self) -> str:
        """相對資料夾路徑（用於顯示）"""
        if self.root_dir:
            try:
                rel = self.folder.relative_to(self.root_dir)
                return rel.as_posix() if rel.parts else "."
            except ValueError:
                pass
        return self.folder.name

    @property
    def newest_source_mtime(self) -> float:
        """最新來源檔案的修改時間"""
        newest = 0.0
        for f in self.files:
            try:
                newest = max(newest, f.stat().st_mtime)
            except FileNotFoundError:
                # 掃描後被移除或更名的來源檔
                continue
        return newest

    @property
    def output_exists(self) -> bool:
        return self.output_path.exists()

    def needs_conversion(self) -> bool:
        """判斷是否需要轉檔（輸出不存在或比任何來源檔舊）"""
        try:
            output_mtime = self.output_path.stat().st_mtime
        except FileNotFoundError:
            return True
        return output_mtime < self.newest_source_mtime

    def __str__(self) -> str:
        status = "需轉檔" if self.needs_conversion() else "已是最新"
        return f"[{status}] {self.relative_folder} ({len(self.files)} 個檔案) -> {self.output_path.name}"


def _matches(patterns: list[str], rel_path: str, name: str) -> bool:
    for pattern in patterns:
        if fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
            return True
    return False


class FolderScanner:
    """資料夾掃描器

    依設定選取來源檔案並依資料夾分組：
    - folder 模式：每個含有來源檔的資料夾為一組
    - top 模式：根目錄下每個子資料夾（含其下所有檔案）為一組，
      根目錄本身的檔案另成一組
    """

    def __init__(
        self,
        root_dir: Path | str,
        extensions: list[str] | None = None,
        include: list[str] | None = None,
        exclude: list[str] | None = None,
        group_mode: str = GROUP_MODE_FOLDER,
        recursive: bool = True,
        output_dir: Path | str | None = None,
        master_name: str = "Master",
    ):
        """
        初始化掃描器

        Args:
            root_dir: 根目錄
            extensions: 要選取的副檔名，預設為 DEFAULT_EXTENSIONS
            include: 要包含的資料夾樣式（fnmatch），空表示全部
            exclude: 要排除的資料夾樣式（fnmatch），其子目錄一併排除
            group_mode: 分組方式（folder 或 top）
            recursive: 是否掃描子目錄
            output_dir: 分組 NWD 輸出目錄，None 表示輸出到各分組資料夾
            master_name: 總模型檔名（不含副檔名）
        """
        if group_mode not in VALID_GROUP_MODES:
            raise ValueError(f"不支援的分組方式: {group_mode}，支援: {', '.join(sorted(VALID_GROUP_MODES))}")

        self.root_dir = Path(root_dir).resolve()
        self.extensions = {e.lower() for e in (extensions or DEFAULT_EXTENSIONS)}
        self.include = list(include or [])
        self.exclude = list(exclude or [])
        self.group_mode = group_mode
        self.recursive = recursive
        self.output_dir = Path(output_dir).resolve() if output_dir else None
        self.master_name = master_name

        root_output = self._output_path_for(self.root_dir, self.root_dir.name)
        if str(root_output).lower() == str(self.master_path).lower():
            raise ValueError(
                f"根目錄分組的輸出與總模型相同: {self.master_path}，請以 --master 指定其他總模型名稱"
            )

    @property
    def master_path(self) -> Path:
        """總模型輸出路徑"""
        base = self.output_dir or self.root_dir
        return base / (self.master_name + NWD_EXTENSION)

    def _group_key(self, folder: Path) -> Path:
        if self.group_mode == GROUP_MODE_FOLDER or folder == self.root_dir:
            return folder
        rel = folder.relative_to(self.root_dir)
        return self.root_dir / rel.parts[0]

    def _output_path_for(self, folder: Path, name: str) -> Path:
        if self.output_dir is None:
            return folder / (name + NWD_EXTENSION)
        rel = folder.relative_to(self.root_dir)
        return self.output_dir / rel / (name + NWD_EXTENSION)

    def _is_pruned(self, path: Path) -> bool:
        if path.name.startswith(".") or path.name.startswith(STAGING_PREFIX):
            return True
        if self.output_dir is not None and path == self.output_dir:
            # 輸出目錄位於根目錄內時不可被當作來源
            return True
        rel = path.relative_to(self.root_dir).as_posix()
        return _matches(self.exclude, rel, path.name)

    def _is_candidate(self, filepath: Path) -> bool:
        name = filepath.name
        if name.startswith("~$") or name.startswith("."):
            return False
        ext = filepath.suffix.lower()
        if ext in _IGNORED_SUFFIXES:
            return False
        return ext in self.extensions

    def scan(self) -> list[FileGroup]:
        """
        掃描根目錄，產生轉檔分組

        Returns:
            所有找到的分組（不論是否需要轉檔），依資料夾排序
        """
        if not self.root_dir.exists():
            raise FileNotFoundError(f"根目錄不存在: {self.root_dir}")

        groups: dict[Path, FileGroup] = {}
        master_path = self.master_path

        for root, dirs, files in os.walk(self.root_dir):
            root_path = Path(root)
            depth = len(root_path.relative_to(self.root_dir).parts)

            dirs[:] = sorted(d for d in dirs if not self._is_pruned(root_path / d))
            if not self.recursive:
                # top 模式非遞迴時仍需進入第一層子目錄
                max_depth = 1 if self.group_mode == GROUP_MODE_TOP else 0
                if depth >= max_depth:
                    dirs[:] = []

            key = self._group_key(root_path)
            group = groups.get(key)
            if group is None:
                name = key.name
                group = FileGroup(
                    folder=key,
                    name=name,
                    output_path=self._output_path_for(key, name),
                    root_dir=self.root_dir,
                )

            for filename in sorted(files):
                filepath = root_path / filename
                if not self._is_candidate(filepath):
                    continue
                if filepath == group.output_path or filepath == master_path:
                    continue
                if is_fallback_of(filepath, group.output_path) or is_fallback_of(filepath, master_path):
                    # 目的檔被鎖定時另存的結果
                    continue
                group.files.append(filepath)

            if group.files:
                groups[key] = group

        result = []
        for key in sorted(groups):
            group = groups[key]
            rel = group.relative_folder
            if self.include and not _matches(self.include, rel, group.folder.name):
                logger.debug(f"略過未包含的資料夾: {rel}")
                continue
            group.files.sort()
            result.append(group)

        logger.debug(f"掃描完成：{len(result)} 個分組")
        return result

    def scan_pending(self) -> tuple[list[FileGroup], list[FileGroup]]:
        """
        掃描並分類分組

        Returns:
            (需要轉檔的分組, 已是最新的分組)
        """
        all_groups = self.scan()
        pending = [g for g in all_groups if g.needs_conversion()]
        up_to_date = [g for g in all_groups if not g.needs_conversion()]
        return pending, up_to_date
