import pytest

from debian_live_customizer.bootcfg import (
    BootConfig,
    _rewrite,
    find_boot_configs,
    patch_boot_configs,
)
from debian_live_customizer.errors import PatchError

GRUB_CFG = """\
if loadfont $prefix/font.pf2 ; then
  set gfxmode=800x600
fi
set timeout=5
set default="2"

menuentry "Live system (amd64)" --hotkey=l {
\tlinux\t/live/vmlinuz-6.12.0-amd64 boot=live components quiet splash findiso=${iso_path}
\tinitrd\t/live/initrd.img-6.12.0-amd64
}
menuentry "Live system (amd64 fail-safe mode)" {
\tlinux\t/live/vmlinuz-6.12.0-amd64 boot=live components memtest noapic noapm nodma nomce nosmp nosplash vga=788
\tinitrd\t/live/initrd.img-6.12.0-amd64
}
"""

ISOLINUX_CFG = """\
include menu.cfg
default vesamenu.c32
prompt 0
timeout 0
"""

LIVE_CFG = """\
label live-amd64
\tmenu label ^Live system (amd64)
\tlinux /live/vmlinuz-6.12.0-amd64
\tinitrd /live/initrd.img-6.12.0-amd64
\tappend boot=live components quiet splash

label live-amd64-failsafe
\tmenu label Live system (amd64 fail-safe mode)
\tlinux /live/vmlinuz-6.12.0-amd64
\tinitrd /live/initrd.img-6.12.0-amd64
\tappend boot=live components memtest noapic noapm nodma nomce nosmp nosplash vga=788

label install
\tmenu label ^Install
\tlinux /install/vmlinuz
\tappend vga=788 quiet
"""


@pytest.fixture
def iso_tree(tmp_path):
    tree = tmp_path / "iso_extract"
    (tree / "boot" / "grub").mkdir(parents=True)
    (tree / "isolinux").mkdir()
    (tree / "boot" / "grub" / "grub.cfg").write_text(GRUB_CFG)
    (tree / "isolinux" / "isolinux.cfg").write_text(ISOLINUX_CFG)
    (tree / "isolinux" / "live.cfg").write_text(LIVE_CFG)
    return tree


def _kernel_lines(text):
    return [
        line for line in text.splitlines()
        if line.strip().split()[:1] and (
            line.strip().split()[0].startswith("linux") or line.strip().split()[0] == "append"
        )
    ]


def test_grub_timeout_and_default_are_forced(iso_tree):
    patch_boot_configs(iso_tree)

    text = (iso_tree / "boot" / "grub" / "grub.cfg").read_text()
    assert "set timeout=10" in text.splitlines()
    assert 'set default="0"' in text.splitlines()
    assert "set timeout=5" not in text
    assert 'set default="2"' not in text


def test_silencing_tokens_removed_and_overlay_added_once(iso_tree):
    patch_boot_configs(iso_tree)
    patch_boot_configs(iso_tree)

    for path in find_boot_configs(iso_tree):
        text = path.read_text()
        for line in text.splitlines():
            assert "quiet" not in line.split()
            assert "splash" not in line.split()
        for line in _kernel_lines(text):
            assert line.split().count("overlay-size=16G") == 1, line


def test_nosplash_is_not_a_splash_token(iso_tree):
    patch_boot_configs(iso_tree)
    text = (iso_tree / "isolinux" / "live.cfg").read_text()
    assert "nosplash" in text


def test_repeated_patch_is_a_no_op(iso_tree):
    patch_boot_configs(iso_tree)
    before = {p: p.read_text() for p in find_boot_configs(iso_tree)}

    report = patch_boot_configs(iso_tree)

    assert report.patched == []
    assert {p: p.read_text() for p in find_boot_configs(iso_tree)} == before


def test_first_live_entry_becomes_default(iso_tree):
    patch_boot_configs(iso_tree)

    lines = (iso_tree / "isolinux" / "live.cfg").read_text().splitlines()
    defaults = [i for i, line in enumerate(lines) if line.strip() == "menu default"]
    assert len(defaults) == 1
    assert lines[defaults[0] - 1] == "label live-amd64"


def test_existing_default_moves_to_first_entry():
    cfg = BootConfig.from_text("label a\n\nlabel b\n  menu default\nlabel c\n")
    assert cfg.mark_first_label_default() is True
    assert cfg.to_text() == "label a\n  menu default\n\nlabel b\nlabel c\n"


def test_isolinux_timeout_in_tenths(iso_tree):
    patch_boot_configs(iso_tree, isolinux_timeout=100)
    lines = (iso_tree / "isolinux" / "isolinux.cfg").read_text().splitlines()
    assert "timeout 100" in lines
    assert "timeout 0" not in lines


def test_missing_live_cfg_is_skipped(iso_tree):
    (iso_tree / "isolinux" / "live.cfg").unlink()

    report = patch_boot_configs(iso_tree)

    assert iso_tree / "isolinux" / "live.cfg" in report.skipped
    assert (iso_tree / "isolinux" / "isolinux.cfg") in report.patched


def test_tree_without_boot_configs(tmp_path):
    report = patch_boot_configs(tmp_path)
    assert report.patched == []
    assert len(report.skipped) == 2


def test_configs_found_anywhere_in_tree(tmp_path):
    (tmp_path / "boot" / "grub" / "x86_64-efi").mkdir(parents=True)
    (tmp_path / "boot" / "grub" / "x86_64-efi" / "grub.cfg").write_text("linux /vmlinuz quiet\n")
    (tmp_path / "isolinux").mkdir()
    (tmp_path / "isolinux" / "txt.cfg").write_text("append initrd=x quiet\n")
    (tmp_path / "isolinux" / "other.cfg").write_text("append quiet\n")

    patch_boot_configs(tmp_path, overlay_size="8G")

    assert (tmp_path / "boot" / "grub" / "x86_64-efi" / "grub.cfg").read_text() == (
        "linux /vmlinuz overlay-size=8G\n"
    )
    assert (tmp_path / "isolinux" / "txt.cfg").read_text() == "append initrd=x overlay-size=8G\n"
    assert (tmp_path / "isolinux" / "other.cfg").read_text() == "append quiet\n"


def test_remove_token_only_whole_words():
    cfg = BootConfig.from_text("echo quietly\nappend quiet splash=foo splash\n")
    assert cfg.remove_token("quiet") == 1
    assert cfg.remove_token("splash") == 1
    assert cfg.to_text() == "echo quietly\nappend splash=foo\n"


def test_existing_overlay_size_is_replaced():
    cfg = BootConfig.from_text("  append boot=live overlay-size=4G quiet overlay-size=2G\n")
    cfg.set_kernel_param("overlay-size", "16G")
    assert cfg.to_text() == "  append boot=live quiet overlay-size=16G\n"


def test_non_kernel_lines_untouched():
    cfg = BootConfig.from_text("menu label linux stuff\ninitrd /live/initrd.img\n")
    assert cfg.set_kernel_param("overlay-size", "16G") == 0


def test_unreadable_config_raises_patch_error(tmp_path):
    with pytest.raises(PatchError) as excinfo:
        _rewrite(tmp_path / "missing" / "grub.cfg", lambda cfg: None)
    assert "grub.cfg" in str(excinfo.value)
    assert excinfo.value.stage == "patch-boot"


def test_uppercase_isolinux_keywords(tmp_path):
    (tmp_path / "isolinux").mkdir()
    (tmp_path / "isolinux" / "isolinux.cfg").write_text("TIMEOUT 50\n")
    (tmp_path / "isolinux" / "live.cfg").write_text(
        "LABEL one\n  APPEND boot=live quiet\nLABEL two\n  MENU DEFAULT\n"
    )

    patch_boot_configs(tmp_path)

    assert (tmp_path / "isolinux" / "isolinux.cfg").read_text() == "timeout 100\n"
    assert (tmp_path / "isolinux" / "live.cfg").read_text() == (
        "LABEL one\n  menu default\n  APPEND boot=live overlay-size=16G\nLABEL two\n"
    )


def test_grub_keywords_stay_case_sensitive():
    cfg = BootConfig.from_text("LINUX /vmlinuz quiet\n")
    assert cfg.set_kernel_param("overlay-size", "16G") == 0
