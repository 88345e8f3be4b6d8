import json

import pytest

from brainfusion.config import (
    env_overrides,
    load_file,
    merge,
    parse_assignment,
    parse_value,
    resolve_config,
)
from brainfusion.core.errors import ConfigurationError

BASE = {
    "data": {"name": "xor", "options": {"seed": 0}},
    "model": {"kind": "dense", "hidden": [3]},
    "train": {"lr": 0.5, "epochs": 10},
}


def test_merge_is_recursive_and_copies():
    merged = merge(BASE, {"train": {"lr": 0.1}, "extra": 1})
    assert merged["train"] == {"lr": 0.1, "epochs": 10}
    assert merged["extra"] == 1
    assert BASE["train"]["lr"] == 0.5


def test_parse_value():
    assert parse_value("0.25") == 0.25
    assert parse_value("[1, 2]") == [1, 2]
    assert parse_value("true") is True
    assert parse_value("xor") == "xor"


def test_parse_assignment():
    assert parse_assignment("train.lr=0.05") == {"train": {"lr": 0.05}}
    assert parse_assignment("model.hidden=[8,4]") == {"model": {"hidden": [8, 4]}}
    for bad in ("train.lr", "=3", ""):
        with pytest.raises(ConfigurationError):
            parse_assignment(bad)


def test_env_overrides_use_prefix():
    environ = {
        "BRAINFUSION__TRAIN__LR": "0.2",
        "BRAINFUSION__DATA__OPTIONS__SEED": "7",
        "OTHER__TRAIN__LR": "9",
    }
    assert env_overrides(environ) == {"train": {"lr": 0.2}, "data": {"options": {"seed": 7}}}


def test_layers_apply_in_precedence_order(tmp_path):
    override = tmp_path / "override.json"
    override.write_text(json.dumps({"train": {"lr": 0.3, "epochs": 20}}))
    config = resolve_config(
        BASE,
        config_file=override,
        environ={"BRAINFUSION__TRAIN__EPOCHS": "30", "BRAINFUSION__TRAIN__SEED": "4"},
        assignments=["train.seed=5"],
    )
    assert config["train"] == {"lr": 0.3, "epochs": 30, "seed": 5}
    assert config["model"] == BASE["model"]


def test_complete_file_replaces_base(tmp_path):
    full = {"data": {"name": "sine"}, "model": {"kind": "dense"}, "train": {"lr": 1.0}}
    path = tmp_path / "full.json"
    path.write_text(json.dumps(full))
    assert resolve_config(BASE, config_file=path, environ={}) == full


def test_yaml_files_load(tmp_path):
    pytest.importorskip("yaml")
    path = tmp_path / "cfg.yaml"
    path.write_text("train:\n  lr: 0.05\n")
    assert load_file(path) == {"train": {"lr": 0.05}}


def test_load_file_rejects_other_formats(tmp_path):
    path = tmp_path / "cfg.toml"
    path.write_text("x = 1")
    with pytest.raises(ValueError):
        load_file(path)
    path = tmp_path / "list.json"
    path.write_text("[1, 2]")
    with pytest.raises(TypeError):
        load_file(path)
