from __future__ import annotations

import os
from pathlib import Path

import pytest

import dockerx.identity as identity
from dockerx.errors import IdentityOverlayError, RuntimeInvocationError
from dockerx.launch import build_docker_args
from dockerx.runtime import DockerRuntime


def test_read_image_file_returns_passwd(integration_image: str) -> None:
    content = DockerRuntime(read_timeout=60).read_image_file(integration_image, identity.PASSWD_PATH)

    assert content.startswith("root:x:0:0:")


def test_read_missing_file_reports_image_and_path(integration_image: str) -> None:
    with pytest.raises(IdentityOverlayError, match="read /etc/does-not-exist from image"):
        DockerRuntime(read_timeout=60).read_image_file(integration_image, "/etc/does-not-exist")


def test_identity_overlay_is_visible_in_container(integration_image: str, tmp_path: Path) -> None:
    runtime = DockerRuntime(read_timeout=60)

    with identity.identity_overlay(
        runtime, integration_image, username="dev", home="/home/dev", uid_gid="4242:4343"
    ) as mounts:
        overlay_dir = Path(mounts[0].source).parent
        args, _ = build_docker_args(
            integration_image,
            str(tmp_path),
            ["sh", "-c", "id -un && grep '^dev:' /etc/group"],
            identity_mounts=mounts,
            no_pull=True,
            uid_gid="4242:4343",
            interactive=False,
            lookup_env={}.get,
        )
        runtime.run(args)

    assert not overlay_dir.exists()


def test_non_zero_exit_is_wrapped(integration_image: str, tmp_path: Path) -> None:
    args, _ = build_docker_args(
        integration_image,
        str(tmp_path),
        ["sh", "-c", "exit 3"],
        no_pull=True,
        uid_gid=f"{os.geteuid()}:{os.getegid()}",
        interactive=False,
        lookup_env={}.get,
    )

    with pytest.raises(RuntimeInvocationError, match="exit status 3"):
        DockerRuntime().run(args)
