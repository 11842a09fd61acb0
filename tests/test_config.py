from pathlib import Path

import pytest

from crftagger.config import DecodeConfig, load_config


def test_load_config_reads_decode_section(tmp_path: Path) -> None:
    config_path = tmp_path / "decode.yaml"
    config_path.write_text(
        """
decode:
  cost_factor: 0.5
  backend: process
  max_workers: 4
  chunksize: 16
  verbose: true
""".strip(),
        encoding="utf-8",
    )

    cfg = load_config(str(config_path))

    assert cfg.cost_factor == 0.5
    assert cfg.backend == "process"
    assert cfg.max_workers == 4
    assert cfg.chunksize == 16
    assert cfg.verbose is True
    assert cfg.show_progress is False


def test_load_config_accepts_root_level_keys(tmp_path: Path) -> None:
    config_path = tmp_path / "decode.yaml"
    config_path.write_text("cost_factor: 2.0\n", encoding="utf-8")

    cfg = load_config(str(config_path))

    assert cfg == DecodeConfig(cost_factor=2.0)


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "decode.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_config(str(config_path)) == DecodeConfig()


def test_load_config_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_load_config_rejects_non_dict_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "decode.yaml"
    config_path.write_text("- not a mapping", encoding="utf-8")

    with pytest.raises(TypeError):
        load_config(str(config_path))


def test_load_config_reports_yaml_errors(tmp_path: Path) -> None:
    config_path = tmp_path / "decode.yaml"
    config_path.write_text("decode: [unclosed", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(str(config_path))


@pytest.mark.parametrize(
    "overrides",
    [
        {"backend": "cluster"},
        {"cost_factor": -1.0},
        {"max_workers": 0},
        {"chunksize": 0},
    ],
)
def test_decode_config_validates_values(overrides) -> None:
    with pytest.raises(ValueError):
        DecodeConfig(**overrides)
