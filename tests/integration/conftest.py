from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

import sys

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

INTEGRATION_IMAGE = "alpine:latest"


def _docker_daemon_available() -> bool:
    if shutil.which("docker") is None:
        return False
    result = subprocess.run(
        ["docker", "info", "--format", "{{.ServerVersion}}"],
        check=False,
        text=True,
        capture_output=True,
    )
    return result.returncode == 0 and bool(result.stdout.strip())


@pytest.fixture(scope="session")
def docker_daemon_available() -> bool:
    return _docker_daemon_available()


@pytest.fixture(scope="session")
def integration_image(docker_daemon_available: bool) -> str:
    if not docker_daemon_available:
        pytest.skip("docker daemon is not available")
    result = subprocess.run(
        ["docker", "pull", INTEGRATION_IMAGE],
        check=False,
        text=True,
        capture_output=True,
    )
    if result.returncode != 0:
        pytest.skip(f"unable to pull {INTEGRATION_IMAGE}: {result.stderr.strip()}")
    return INTEGRATION_IMAGE
