"""Navisworks 批次轉檔工具 - 套件入口點

支援以 `python -m nwbatch` 方式啟動。
"""

import os
import sys


def main() -> None:
    """主入口點"""
    # 強制使用 UTF-8 編碼 (Windows 環境修復)
    # 解決 cp950 等非 UTF-8 主控台輸出中文時的 UnicodeEncodeError
    if sys.platform == 'win32':
        if hasattr(sys.stdout, 'reconfigure'):
            sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        if hasattr(sys.stderr, 'reconfigure'):
            sys.stderr.reconfigure(encoding='utf-8', errors='replace')
        os.environ['PYTHONIOENCODING'] = 'utf-8'

    from nwbatch.cli.main import app
    app(prog_name="nwbatch")


if __name__ == "__main__":
    main()
