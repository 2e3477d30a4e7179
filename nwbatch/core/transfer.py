"""轉檔結果搬移模組

NWD 若正被 Navisworks 開啟，目的檔會被鎖定而無法覆寫。
此時改存為同目錄下帶時間戳記的檔名，避免中斷整批作業。
"""

import errno
import logging
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

# 替代檔名的時間戳記格式，與 _FALLBACK_STAMP_PATTERN 對應
FALLBACK_STAMP_FORMAT = "%Y%m%d-%H%M%S"
_FALLBACK_STAMP_PATTERN = r"\.\d{8}-\d{6}(?:-\d+)?"


class TransferStatus(Enum):
    """搬移狀態"""

    MOVED = "moved"
    FALLBACK = "fallback"
    FAILED = "failed"


@dataclass
class TransferOutcome:
    """搬移結果"""

    status: TransferStatus
    path: Path
    message: str = ""


def is_locked(path: Path) -> bool:
    """判斷既有檔案是否被其他程式鎖定"""
    if not path.exists():
        return False
    try:
        with open(path, "ab"):
            pass
    except OSError:
        return True
    return False


def fallback_path(destination: Path, now: datetime | None = None) -> Path:
    """目的檔被鎖定時使用的替代路徑：<stem>.<時間戳記>[-序號]<suffix>"""
    stamp = (now or datetime.now()).strftime(FALLBACK_STAMP_FORMAT)
    candidate = destination.with_name(f"{destination.stem}.{stamp}{destination.suffix}")
    counter = 1
    while candidate.exists():
        counter += 1
        candidate = destination.with_name(f"{destination.stem}.{stamp}-{counter}{destination.suffix}")
    return candidate


def is_fallback_of(path: Path, destination: Path) -> bool:
    """判斷 path 是否為 destination 被鎖定時另存的替代檔"""
    if path.parent != destination.parent:
        return False
    pattern = re.escape(destination.stem) + _FALLBACK_STAMP_PATTERN + re.escape(destination.suffix)
    return re.fullmatch(pattern, path.name, re.IGNORECASE) is not None


def _replace(staged: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.replace(staged, destination)
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise
        # 跨磁碟時無法直接重新命名
        shutil.copy2(staged, destination)
        staged.unlink()


def transfer_result(staged: Path, destination: Path) -> TransferOutcome:
    """
    將暫存區的輸出搬移到正式位置

    不會拋出 OSError；失敗時暫存檔保留在原處。

    Args:
        staged: 暫存區中的輸出檔
        destination: 正式位置

    Returns:
        搬移結果
    """
    if not staged.exists():
        return TransferOutcome(TransferStatus.FAILED, staged, f"找不到轉檔輸出: {staged.name}")

    try:
        _replace(staged, destination)
        logger.debug(f"已搬移：{staged} -> {destination}")
        return TransferOutcome(TransferStatus.MOVED, destination)
    except OSError as e:
        logger.warning(f"無法覆寫 {destination}（可能正被開啟）：{e}")

    alternate = fallback_path(destination)
    try:
        shutil.move(str(staged), str(alternate))
    except OSError as e:
        logger.error(f"無法儲存替代檔案 {alternate}：{e}，結果保留於 {staged}")
        return TransferOutcome(
            TransferStatus.FAILED,
            staged,
            f"無法搬移輸出，已保留於暫存區: {staged}",
        )

    logger.warning(f"目的檔被鎖定，已另存為 {alternate.name}")
    return TransferOutcome(
        TransferStatus.FALLBACK,
        alternate,
        f"{destination.name} 被鎖定，已另存為 {alternate.name}",
    )
