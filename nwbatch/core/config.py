"""批次設定管理模組

提供批次設定（JSON）的儲存與載入功能。
"""

import json
import logging
from dataclasses import dataclass, asdict, field
from pathlib import Path

from nwbatch.core.formats import DEFAULT_EXTENSIONS, normalize_extension, SUPPORTED_EXTENSIONS, validate_nwd_version
from nwbatch.core.paths import get_config_dir

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "nwbatch.json"

# 允許的分組方式
GROUP_MODE_FOLDER = "folder"
GROUP_MODE_TOP = "top"
VALID_GROUP_MODES = {GROUP_MODE_FOLDER, GROUP_MODE_TOP}


@dataclass
class BatchConfig:
    """批次設定資料類別"""

    root_dir: str = ""
    output_dir: str = ""
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    include_folders: list[str] = field(default_factory=list)
    exclude_folders: list[str] = field(default_factory=list)
    group_mode: str = GROUP_MODE_FOLDER
    recursive: bool = True
    master_name: str = "Master"
    runner_path: str = ""
    nwd_version: str = ""
    timeout: int = 3600
    skip_up_to_date: bool = True
    keep_manifests: bool = False


def get_default_config() -> BatchConfig:
    """取得預設設定"""
    return BatchConfig()


def default_config_path() -> Path:
    """預設設定檔路徑"""
    return get_config_dir() / CONFIG_FILE_NAME


def _is_str_list(value: object) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _load_extensions(value: object) -> list[str] | None:
    if not _is_str_list(value):
        return None
    extensions: list[str] = []
    for item in value:
        try:
            ext = normalize_extension(item)
        except ValueError:
            return None
        if ext not in SUPPORTED_EXTENSIONS:
            logger.warning(f"忽略不支援的副檔名: {ext}")
            continue
        if ext not in extensions:
            extensions.append(ext)
    return extensions or None


def config_from_dict(data: dict) -> BatchConfig:
    """由字典建立設定，逐欄驗證

    無效的欄位會記錄警告並保留預設值。
    """
    config = get_default_config()

    for name in ("root_dir", "output_dir", "runner_path"):
        if name in data:
            if isinstance(data[name], str):
                setattr(config, name, data[name])
            else:
                logger.warning(f"無效的 {name}: {data[name]!r}，使用預設值")

    if "master_name" in data:
        value = data["master_name"]
        if isinstance(value, str) and value.strip():
            config.master_name = value.strip()
        else:
            logger.warning(f"無效的 master_name: {value!r}，使用預設值")

    if "extensions" in data:
        extensions = _load_extensions(data["extensions"])
        if extensions is not None:
            config.extensions = extensions
        else:
            logger.warning(f"無效的 extensions: {data['extensions']!r}，使用預設值")

    for name in ("include_folders", "exclude_folders"):
        if name in data:
            if _is_str_list(data[name]):
                setattr(config, name, list(data[name]))
            else:
                logger.warning(f"無效的 {name}: {data[name]!r}，使用預設值")

    if "group_mode" in data:
        if data["group_mode"] in VALID_GROUP_MODES:
            config.group_mode = data["group_mode"]
        else:
            logger.warning(f"無效的 group_mode: {data['group_mode']!r}，使用預設值")

    for name in ("recursive", "skip_up_to_date", "keep_manifests"):
        if name in data:
            if isinstance(data[name], bool):
                setattr(config, name, data[name])
            else:
                logger.warning(f"無效的 {name}: {data[name]!r}，使用預設值")

    if "nwd_version" in data:
        value = data["nwd_version"]
        if isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        try:
            if not isinstance(value, str):
                raise ValueError(f"無效的 NWD 版本: {value!r}")
            config.nwd_version = validate_nwd_version(value)
        except ValueError as e:
            logger.warning(f"{e}，使用預設值")

    if "timeout" in data:
        value = data["timeout"]
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            config.timeout = value
        else:
            logger.warning(f"無效的 timeout: {value!r}，使用預設值")

    return config


def load_config(path: Path | str | None = None) -> BatchConfig:
    """載入批次設定

    從設定檔載入設定，如果檔案不存在或損壞則返回預設值。

    Args:
        path: 設定檔路徑，None 表示使用預設位置

    Returns:
        BatchConfig: 載入的設定或預設設定
    """
    config_file = Path(path) if path is not None else default_config_path()

    if not config_file.exists():
        logger.debug(f"設定檔不存在，使用預設值: {config_file}")
        return get_default_config()

    try:
        with open(config_file, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning(f"設定檔 JSON 解析失敗: {e}，使用預設值")
        return get_default_config()
    except OSError as e:
        logger.error(f"載入設定檔時發生錯誤: {e}，使用預設值")
        return get_default_config()

    if not isinstance(data, dict):
        logger.warning("設定檔內容必須是 JSON 物件，使用預設值")
        return get_default_config()

    config = config_from_dict(data)
    logger.debug(f"成功載入設定: {config}")
    return config


def save_config(config: BatchConfig, path: Path | str | None = None) -> Path:
    """儲存批次設定

    Args:
        config: 要儲存的設定
        path: 設定檔路徑，None 表示使用預設位置

    Returns:
        實際寫入的設定檔路徑
    """
    config_file = Path(path) if path is not None else default_config_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(asdict(config), f, ensure_ascii=False, indent=2)

    logger.debug(f"成功儲存設定: {config_file}")
    return config_file
