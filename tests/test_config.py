from __future__ import annotations

import json
import os

import pytest

import codecube.main as main_module
from codecube.config import DEFAULT_ID_ATTEMPTS, DEFAULT_PORT, ServerConfig
from codecube.utils import clamp_float, clamp_int, json_line, make_cache_dirs, safe_name


def test_defaults() -> None:
    cfg = ServerConfig()
    assert cfg.PORT == DEFAULT_PORT
    assert cfg.DB_PATH == "code-cube-pastes.db"
    assert cfg.ID_ATTEMPTS == DEFAULT_ID_ATTEMPTS


def test_load_from_env(monkeypatch) -> None:
    monkeypatch.setenv("CODECUBE_HOST", "0.0.0.0")
    monkeypatch.setenv("CODECUBE_PORT", "2222")
    monkeypatch.setenv("CODECUBE_DB_PATH", "/tmp/pastes.db")
    monkeypatch.setenv("CODECUBE_STORE_TIMEOUT", "2.5")
    monkeypatch.setenv("CODECUBE_ID_ATTEMPTS", "0")
    cfg = ServerConfig()
    cfg.load_from_env()
    assert (cfg.HOST, cfg.PORT, cfg.DB_PATH) == ("0.0.0.0", 2222, "/tmp/pastes.db")
    assert cfg.STORE_TIMEOUT == 2.5
    assert cfg.ID_ATTEMPTS == 0


def test_cli_overrides_and_clamps(monkeypatch) -> None:
    cfg = ServerConfig()
    monkeypatch.setattr(main_module, "config", cfg)
    args = main_module.build_parser().parse_args(
        ["--port", "2022", "--db", "other.db", "--store-timeout", "500", "--id-attempts", "-4"]
    )
    main_module.apply_args(args)
    assert cfg.PORT == 2022
    assert cfg.DB_PATH == "other.db"
    assert cfg.STORE_TIMEOUT == 60.0
    assert cfg.ID_ATTEMPTS == 0


def test_cli_keeps_env_values_when_flags_absent(monkeypatch) -> None:
    cfg = ServerConfig()
    cfg.HOST = "10.0.0.1"
    monkeypatch.setattr(main_module, "config", cfg)
    main_module.apply_args(main_module.build_parser().parse_args([]))
    assert cfg.HOST == "10.0.0.1"
    assert cfg.PORT == DEFAULT_PORT


@pytest.mark.parametrize(
    "value, expected",
    [("3", 3), ("junk", 5), (-1, 0), (99, 20)],
)
def test_clamp_int(value, expected: int) -> None:
    assert clamp_int(value, 5, 0, 20) == expected


def test_clamp_float() -> None:
    assert clamp_float("0.5", 1.0, 0.1, 2.0) == 0.5
    assert clamp_float(None, 1.0, 0.1, 2.0) == 1.0
    assert clamp_float(0, 1.0, 0.1, 2.0) == 0.1


def test_safe_name() -> None:
    assert safe_name("xterm-256color") == "xterm-256color"
    assert safe_name("../evil term") == ".._evil_term"
    assert safe_name("   ") == "unnamed"


def test_cache_dirs_and_json_lines(tmp_path) -> None:
    dirs = make_cache_dirs(str(tmp_path / "cache"))
    assert os.path.isdir(dirs["sessions_dir"])

    path = os.path.join(dirs["sessions_dir"], "log.jsonl")
    json_line(path, {"event": "a"})
    json_line(path, {"event": "b", "text": "ü"})
    with open(path, encoding="utf-8") as handle:
        rows = [json.loads(line) for line in handle]
    assert rows == [{"event": "a"}, {"event": "b", "text": "ü"}]


def test_main_rejects_bad_port(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(main_module, "config", ServerConfig())
    with pytest.raises(SystemExit):
        main_module.main(["--port", "70000", "--cache-dir", str(tmp_path / "cache")])
