"""輸入格式定義"""

from __future__ import annotations

import re

# Navisworks 文件副檔名
NWD_EXTENSION = ".nwd"

# FileToolsTaskRunner 可讀取的來源副檔名
SUPPORTED_EXTENSIONS = {
    # Navisworks
    ".nwc", ".nwd", ".nwf",
    # Autodesk
    ".dwg", ".dxf", ".rvt", ".ipt", ".iam", ".ipj", ".fbx",
    # 開放格式
    ".ifc", ".stp", ".step", ".igs", ".iges", ".sat", ".3ds", ".dwf", ".dwfx",
    # 其他 CAD
    ".dgn", ".skp", ".3dm", ".sldprt", ".sldasm", ".prt", ".asm", ".jt",
}

# 預設選取的副檔名
DEFAULT_EXTENSIONS = [".nwc", ".rvt", ".dwg", ".ifc"]

_VERSION_PATTERN = re.compile(r"^20\d\d$")


def normalize_extension(value: str) -> str:
    """正規化副檔名（小寫、補上點號）"""
    value = value.strip().lower()
    if not value:
        raise ValueError("副檔名不可為空")
    if not value.startswith("."):
        value = "." + value
    return value


def parse_extensions(extensions_str: str, allow_all: bool = False) -> list[str]:
    """解析副檔名字串

    統一 CLI 與設定檔的副檔名解析邏輯。

    Args:
        extensions_str: 副檔名字串，如 "rvt", "rvt,dwg", ".nwc, .ifc", "all"
        allow_all: 是否允許 "all" 關鍵字（展開為所有支援的副檔名）

    Returns:
        副檔名列表（含點號，依輸入順序且不重複）

    Raises:
        ValueError: 不支援的副檔名

    Examples:
        >>> parse_extensions("rvt,DWG")
        ['.rvt', '.dwg']
        >>> parse_extensions("")
        ['.nwc', '.rvt', '.dwg', '.ifc']
    """
    extensions_str = extensions_str.strip().lower()

    if allow_all and extensions_str == "all":
        return sorted(SUPPORTED_EXTENSIONS)

    if not extensions_str:
        return list(DEFAULT_EXTENSIONS)

    extensions: list[str] = []
    for item in extensions_str.split(","):
        if not item.strip():
            continue
        ext = normalize_extension(item)
        if ext not in SUPPORTED_EXTENSIONS:
            raise ValueError(
                f"不支援的副檔名: {ext}，支援的副檔名: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
            )
        if ext not in extensions:
            extensions.append(ext)

    return extensions if extensions else list(DEFAULT_EXTENSIONS)


def validate_nwd_version(version: str) -> str:
    """驗證輸出的 NWD 版本

    空字串代表使用轉檔程式的預設版本。

    Raises:
        ValueError: 版本格式不正確
    """
    version = version.strip()
    if not version:
        return ""
    if not _VERSION_PATTERN.match(version) or int(version) < 2009:
        raise ValueError(f"無效的 NWD 版本: {version}，請使用西元年份，例如 2024")
    return version
