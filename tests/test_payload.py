import os

import pytest

from debian_live_customizer.errors import PayloadError
from debian_live_customizer.payload import inject_payload

UNITS = ("custom-script.service", "fyisp.service")


@pytest.fixture
def payload_dir(tmp_path):
    src = tmp_path / "payload"
    src.mkdir()
    (src / "custom-script.sh").write_text("#!/bin/bash\necho hi\n")
    for unit in UNITS:
        (src / unit).write_text("[Unit]\n")
    return src


def test_payload_lands_in_conventional_locations(tmp_path, payload_dir):
    root = tmp_path / "root"
    root.mkdir()

    installed = inject_payload(root, payload_dir, "custom-script.sh", UNITS)

    script = root / "usr" / "local" / "bin" / "custom-script.sh"
    assert script.read_text() == "#!/bin/bash\necho hi\n"
    assert os.access(script, os.X_OK)
    for unit in UNITS:
        assert (root / "etc" / "systemd" / "system" / unit).read_text() == "[Unit]\n"
    assert len(installed) == 3


def test_missing_source_copies_nothing(tmp_path, payload_dir):
    (payload_dir / "fyisp.service").unlink()
    root = tmp_path / "root"
    root.mkdir()

    with pytest.raises(PayloadError, match="fyisp.service"):
        inject_payload(root, payload_dir, "custom-script.sh", UNITS)

    assert list(root.iterdir()) == []
