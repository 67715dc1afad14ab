from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Sequence

from dockerx.mounts import (
    CONTAINER_APP_DIR,
    CONTAINER_HOME,
    CONTAINER_USER,
    MountSpec,
    ensure_mounts_safe,
    ensure_path_safe,
    stage_path,
)


SELF_IMAGE = "wpkpda/dockerx"
DEFAULT_IMAGE = f"{SELF_IMAGE}:latest"
REGISTRY_PREFIXES = ("docker.io/", "index.docker.io/")
CONFIG_ENV_PREFIX = "DOCKERX_CONFIG"
PASSTHROUGH_ENV_KEYS = (
    "TERM",
    "COLORTERM",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "HF_TOKEN",
    "HUGGINGFACEHUB_API_TOKEN",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "NO_PROXY",
)
HARDENING_FLAGS = (
    "--read-only",
    "--cap-drop",
    "ALL",
    "--cap-add",
    "SETUID",
    "--cap-add",
    "SETGID",
    "--cap-add",
    "AUDIT_WRITE",
)
TMPFS_SPECS = (
    "/tmp:mode=1777",
    "/run:mode=755",
    "/var/tmp:mode=1777",
    "/var/lib/apt/lists:mode=755",
    "/var/cache/apt:mode=755",
)

LookupEnv = Callable[[str], "str | None"]


@dataclass(frozen=True)
class LaunchPlan:
    image: str
    working_directory: str
    command: tuple[str, ...]
    config_mounts: tuple[MountSpec, ...]
    identity_mounts: tuple[MountSpec, ...]
    passthrough_env_keys: tuple[str, ...]
    arguments: tuple[str, ...]

    @property
    def mounts(self) -> tuple[MountSpec, ...]:
        return self.identity_mounts + self.config_mounts


def should_always_pull(image: str) -> bool:
    ref = str(image or "").strip().lower()
    for prefix in REGISTRY_PREFIXES:
        if ref.startswith(prefix):
            ref = ref[len(prefix):]
            break
    return ref == SELF_IMAGE or ref.startswith(f"{SELF_IMAGE}:")


def gather_passthrough_env_keys(lookup_env: LookupEnv = os.environ.get) -> list[str]:
    return [key for key in PASSTHROUGH_ENV_KEYS if str(lookup_env(key) or "").strip()]


def _home_tmpfs_spec(uid_gid: str | None) -> str:
    if uid_gid:
        uid, sep, gid = uid_gid.partition(":")
        if sep and uid and gid:
            return f"{CONTAINER_HOME}:mode=755,uid={uid},gid={gid}"
    return f"{CONTAINER_HOME}:mode=755"


def staged_config_args(config_mounts: Sequence[MountSpec]) -> list[str]:
    """Mount each config source read-only under the staging root and describe it via env.

    The entrypoint inside the sandbox copies ``DOCKERX_CONFIG_SRC_<i>`` to
    ``DOCKERX_CONFIG_DST_<i>``; host paths never appear at their final destination.
    """
    args: list[str] = []
    for index, mount in enumerate(config_mounts):
        staged = stage_path(index)
        args.extend(["--mount", MountSpec(source=mount.source, destination=staged, read_only=True).to_option()])
        args.extend(["--env", f"{CONFIG_ENV_PREFIX}_SRC_{index}={staged}"])
        args.extend(["--env", f"{CONFIG_ENV_PREFIX}_DST_{index}={mount.destination}"])
    if config_mounts:
        args.extend(["--env", f"{CONFIG_ENV_PREFIX}_COUNT={len(config_mounts)}"])
    return args


def build_docker_args(
    image: str,
    work_dir: str,
    command: Sequence[str],
    config_mounts: Sequence[MountSpec] = (),
    identity_mounts: Sequence[MountSpec] = (),
    *,
    no_pull: bool = False,
    uid_gid: str | None = None,
    interactive: bool = False,
    lookup_env: LookupEnv = os.environ.get,
) -> tuple[list[str], list[str]]:
    ensure_path_safe(work_dir, label="current directory")
    ensure_mounts_safe(identity_mounts)
    for mount in config_mounts:
        ensure_path_safe(mount.source, label="mount source")

    args = ["run", "--rm", "-i"]
    if not no_pull and should_always_pull(image):
        args.extend(["--pull", "always"])
    if interactive:
        args.append("-t")

    args.extend(HARDENING_FLAGS)
    args.extend(["--mount", MountSpec(source=work_dir, destination=CONTAINER_APP_DIR, read_only=False).to_option()])
    for spec in TMPFS_SPECS:
        args.extend(["--tmpfs", spec])
    args.extend(["--tmpfs", _home_tmpfs_spec(uid_gid)])
    args.extend(
        [
            "--workdir",
            CONTAINER_APP_DIR,
            "--env",
            f"HOME={CONTAINER_HOME}",
            "--env",
            f"USER={CONTAINER_USER}",
            "--env",
            f"CODEX_HOME={CONTAINER_HOME}/.codex",
        ]
    )

    if uid_gid:
        args.extend(["--user", uid_gid])

    for mount in identity_mounts:
        args.extend(["--mount", mount.to_option()])

    args.extend(staged_config_args(config_mounts))

    env_keys = gather_passthrough_env_keys(lookup_env)
    for key in env_keys:
        args.extend(["--env", key])

    args.append(image)
    args.extend(command)
    return args, env_keys


def build_launch_plan(
    image: str,
    work_dir: str,
    command: Sequence[str],
    config_mounts: Sequence[MountSpec] = (),
    identity_mounts: Sequence[MountSpec] = (),
    *,
    no_pull: bool = False,
    uid_gid: str | None = None,
    interactive: bool = False,
    lookup_env: LookupEnv = os.environ.get,
) -> LaunchPlan:
    args, env_keys = build_docker_args(
        image,
        work_dir,
        command,
        config_mounts,
        identity_mounts,
        no_pull=no_pull,
        uid_gid=uid_gid,
        interactive=interactive,
        lookup_env=lookup_env,
    )
    return LaunchPlan(
        image=image,
        working_directory=work_dir,
        command=tuple(command),
        config_mounts=tuple(config_mounts),
        identity_mounts=tuple(identity_mounts),
        passthrough_env_keys=tuple(env_keys),
        arguments=tuple(args),
    )
