"""檔案清單（manifest）模組

FileToolsTaskRunner 以文字檔接收來源清單：每行一個絕對路徑。
清單以 UTF-8（含 BOM）與 CRLF 換行寫入，以支援非 ASCII 路徑。
"""

import logging
from pathlib import Path
from typing import Iterable

from nwbatch.core.formats import NWD_EXTENSION
from nwbatch.core.scanner import FileGroup

logger = logging.getLogger(__name__)

MANIFEST_ENCODING = "utf-8-sig"
MANIFEST_SUFFIX = ".txt"


def write_manifest(paths: Iterable[Path | str], manifest_path: Path) -> Path:
    """寫入檔案清單

    Args:
        paths: 要列入清單的檔案路徑（重複者只保留第一次出現）
        manifest_path: 清單檔路徑

    Returns:
        清單檔路徑

    Raises:
        ValueError: 清單為空
    """
    entries: list[str] = []
    seen: set[str] = set()
    for path in paths:
        entry = str(Path(path).resolve())
        key = entry.lower()
        if key in seen:
            continue
        seen.add(key)
        entries.append(entry)

    if not entries:
        raise ValueError(f"檔案清單為空，無法建立: {manifest_path.name}")

    manifest_path.parent.mkdir(parents=True, exist_ok=True)
    with open(manifest_path, "w", encoding=MANIFEST_ENCODING, newline="\r\n") as f:
        for entry in entries:
            f.write(entry + "\n")

    logger.debug(f"已建立檔案清單：{manifest_path}（{len(entries)} 個檔案）")
    return manifest_path


def read_manifest(manifest_path: Path) -> list[Path]:
    """讀取檔案清單"""
    with open(manifest_path, "r", encoding=MANIFEST_ENCODING) as f:
        return [Path(line.strip()) for line in f if line.strip()]


def unique_manifest_path(staging_dir: Path, name: str) -> Path:
    """取得暫存區中未使用的清單路徑

    同名分組（不同層級的同名資料夾，或與總模型同名）使用序號區分，
    轉檔輸出以清單檔名命名，因此也不會互相覆寫。
    """
    manifest_path = staging_dir / (name + MANIFEST_SUFFIX)
    counter = 1
    while manifest_path.exists():
        counter += 1
        manifest_path = staging_dir / f"{name}_{counter}{MANIFEST_SUFFIX}"
    return manifest_path


def build_group_manifest(group: FileGroup, staging_dir: Path) -> Path:
    """建立分組清單（列出該分組仍存在的來源檔）

    Raises:
        ValueError: 所有來源檔都已不存在
    """
    files = []
    for path in group.files:
        if path.exists():
            files.append(path)
        else:
            logger.warning(f"來源檔已不存在，略過：{path}")
    return write_manifest(files, unique_manifest_path(staging_dir, group.name))


def build_master_manifest(
    nwd_paths: Iterable[Path],
    staging_dir: Path,
    name: str,
) -> Path:
    """建立總模型清單

    只列入實際存在的 NWD，不存在者記錄警告後略過。

    Raises:
        ValueError: 沒有任何可組合的 NWD
    """
    existing: list[Path] = []
    for path in nwd_paths:
        if path.suffix.lower() != NWD_EXTENSION:
            logger.warning(f"略過非 NWD 檔案：{path}")
            continue
        if not path.exists():
            logger.warning(f"子模型不存在，略過：{path}")
            continue
        existing.append(path)

    if not existing:
        raise ValueError("沒有可組合的子模型")

    return write_manifest(existing, unique_manifest_path(staging_dir, name))
