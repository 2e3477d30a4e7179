"""路徑驗證模組

根目錄可能來自設定檔而非命令列參數，因此無法完全交由 typer 驗證。
"""

from pathlib import Path


def validate_root_dir(path: Path | str) -> tuple[bool, str]:
    """驗證根目錄

    Args:
        path: 要掃描的根目錄

    Returns:
        (是否有效, 錯誤訊息)。有效時錯誤訊息為空字串。
    """
    if not path:
        return False, "未指定根目錄（請提供 ROOT 參數或在設定檔設定 root_dir）"

    path = Path(path)

    if not path.exists():
        return False, f"根目錄不存在：{path}"

    if not path.is_dir():
        return False, f"路徑不是目錄：{path}"

    return True, ""


def validate_output_dir(path: Path | str | None) -> tuple[bool, str]:
    """驗證輸出目錄

    輸出目錄可省略（輸出至各分組資料夾），不存在時會自動建立。
    """
    if not path:
        return True, ""

    path = Path(path)

    if path.exists() and not path.is_dir():
        return False, f"路徑已存在但不是目錄：{path}"

    return True, ""


def validate_paths(
    root_dir: Path | str,
    output_dir: Path | str | None,
) -> tuple[bool, str]:
    """驗證根目錄和輸出目錄"""
    valid, error = validate_root_dir(root_dir)
    if not valid:
        return False, error

    valid, error = validate_output_dir(output_dir)
    if not valid:
        return False, error

    return True, ""
