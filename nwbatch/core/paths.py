"""路徑處理輔助模組

提供統一的路徑處理函數，支援開發模式與打包後執行。
"""

import os
import sys
from pathlib import Path

APP_NAME = "nwbatch"

# 暫存目錄前綴（掃描時會略過）
STAGING_PREFIX = ".nwbatch-staging-"


def _get_app_dir(name: str) -> Path:
    if getattr(sys, 'frozen', False):
        # 打包後：使用 Windows 用戶目錄
        app_dir = Path(os.environ.get('LOCALAPPDATA', '.')) / APP_NAME / name
    else:
        # 開發模式：使用當前目錄
        app_dir = Path.cwd() / name

    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


def get_log_dir() -> Path:
    """取得日誌目錄（支援打包後執行與權限問題）

    打包後使用 Windows 用戶目錄，避免權限問題。
    開發模式使用當前目錄。

    Returns:
        Path: 日誌目錄路徑
    """
    return _get_app_dir("logs")


def get_config_dir() -> Path:
    """取得設定目錄

    Returns:
        Path: 設定目錄路徑
    """
    return _get_app_dir("config")
