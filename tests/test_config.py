"""設定載入與儲存測試"""

import json

from nwbatch.core.config import (
    BatchConfig,
    config_from_dict,
    default_config_path,
    get_default_config,
    load_config,
    save_config,
)


def test_missing_file_returns_defaults(tmp_path):
    assert load_config(tmp_path / "missing.json") == get_default_config()


def test_corrupt_json_returns_defaults(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(path) == get_default_config()


def test_non_object_returns_defaults(tmp_path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    assert load_config(path) == get_default_config()


def test_save_then_load(tmp_path):
    config = BatchConfig(
        root_dir="D:/Project",
        extensions=[".rvt"],
        exclude_folders=["_archive"],
        group_mode="top",
        nwd_version="2023",
        timeout=120,
        keep_manifests=True,
    )
    path = save_config(config, tmp_path / "sub" / "nwbatch.json")
    assert path.exists()
    assert load_config(path) == config


def test_invalid_fields_fall_back_to_defaults():
    defaults = get_default_config()
    config = config_from_dict({
        "root_dir": 5,
        "group_mode": "weird",
        "recursive": "yes",
        "timeout": 0,
        "nwd_version": "v7",
        "master_name": "  ",
        "extensions": "rvt",
        "include_folders": ["A*", 3],
    })
    assert config == defaults


def test_valid_fields_are_loaded():
    config = config_from_dict({
        "root_dir": "C:/P",
        "extensions": ["RVT", "dwg", "xyz", "rvt"],
        "include_folders": ["Arch*"],
        "recursive": False,
        "nwd_version": 2024,
        "master_name": " Federated ",
        "timeout": 60,
    })
    assert config.root_dir == "C:/P"
    assert config.extensions == [".rvt", ".dwg"]
    assert config.include_folders == ["Arch*"]
    assert config.recursive is False
    assert config.nwd_version == "2024"
    assert config.master_name == "Federated"
    assert config.timeout == 60


def test_bom_encoded_file_is_accepted(tmp_path):
    path = tmp_path / "bom.json"
    path.write_bytes(b"\xef\xbb\xbf" + json.dumps({"master_name": "M"}).encode("utf-8"))
    assert load_config(path).master_name == "M"


def test_default_config_path_in_development(in_tmp):
    assert default_config_path() == in_tmp.resolve() / "config" / "nwbatch.json"
