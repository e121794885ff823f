import json

import pytest

from debian_live_customizer.config import BuildConfig, load_build_config


def test_defaults():
    cfg = load_build_config()
    assert cfg == BuildConfig()
    assert cfg.iso_filename == "debian-live-13.1.0-amd64-standard.iso"
    assert cfg.enabled_units == ("custom-script.service", "fyisp.service")
    assert cfg.isolinux_timeout == 100


def test_json_overrides(tmp_path):
    path = tmp_path / "build.json"
    path.write_text(json.dumps({"overlay_size": "8G", "packages": ["htop", "jq"]}))

    cfg = load_build_config(str(path))

    assert cfg.overlay_size == "8G"
    assert cfg.packages == ("htop", "jq")
    assert cfg.grub_timeout == 10


def test_unknown_keys_rejected(tmp_path):
    path = tmp_path / "build.json"
    path.write_text(json.dumps({"overlay": "8G"}))

    with pytest.raises(ValueError, match="overlay"):
        load_build_config(str(path))


def test_config_must_be_object(tmp_path):
    path = tmp_path / "build.json"
    path.write_text("[1, 2]")

    with pytest.raises(ValueError, match="JSON object"):
        load_build_config(str(path))


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_build_config(str(tmp_path / "nope.json"))


@pytest.mark.parametrize(
    "raw, key",
    [
        ({"packages": "htop"}, "packages"),
        ({"packages": ["htop", 3]}, "packages"),
        ({"install_docker": "no"}, "install_docker"),
        ({"grub_timeout": True}, "grub_timeout"),
        ({"grub_timeout": "10"}, "grub_timeout"),
        ({"overlay_size": 16}, "overlay_size"),
    ],
)
def test_wrong_value_types_rejected(tmp_path, raw, key):
    path = tmp_path / "build.json"
    path.write_text(json.dumps(raw))

    with pytest.raises(ValueError, match=key):
        load_build_config(str(path))


def test_typed_scalars_accepted(tmp_path):
    path = tmp_path / "build.json"
    path.write_text(json.dumps({"install_docker": False, "grub_timeout": 0, "disabled_units": []}))

    cfg = load_build_config(str(path))

    assert cfg.install_docker is False
    assert cfg.grub_timeout == 0
    assert cfg.disabled_units == ()
