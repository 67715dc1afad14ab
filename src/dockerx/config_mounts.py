from __future__ import annotations

import logging
import os
from typing import Callable

from dockerx.mounts import CONTAINER_HOME, MountSpec


LOGGER = logging.getLogger("dockerx")

LookupEnv = Callable[[str], "str | None"]
PathExists = Callable[[str], bool]


def path_exists(path: str) -> bool:
    try:
        os.stat(path)
    except (OSError, ValueError):
        return False
    return True


def _env_or_default(lookup_env: LookupEnv, key: str, default: str) -> str:
    value = lookup_env(key) or ""
    return value if value else default


def config_mount_candidates(home_dir: str, lookup_env: LookupEnv) -> list[MountSpec]:
    """Return every well-known config location in priority order, existing or not."""
    config_home = _env_or_default(lookup_env, "XDG_CONFIG_HOME", os.path.join(home_dir, ".config"))
    cache_home = _env_or_default(lookup_env, "XDG_CACHE_HOME", os.path.join(home_dir, ".cache"))
    hf_home = _env_or_default(lookup_env, "HF_HOME", os.path.join(cache_home, "huggingface"))
    codex_home = _env_or_default(lookup_env, "CODEX_HOME", os.path.join(home_dir, ".codex"))

    pairs = [
        (codex_home, ".codex"),
        (os.path.join(config_home, "codex"), ".config/codex"),
        (os.path.join(home_dir, ".openai"), ".openai"),
        (os.path.join(config_home, "gh"), ".config/gh"),
        (os.path.join(config_home, "git"), ".config/git"),
        (os.path.join(home_dir, ".gitconfig"), ".gitconfig"),
        (os.path.join(home_dir, ".git-credentials"), ".git-credentials"),
        (os.path.join(home_dir, ".ssh"), ".ssh"),
        (os.path.join(home_dir, ".huggingface"), ".huggingface"),
        (os.path.join(config_home, "huggingface"), ".config/huggingface"),
        (hf_home, ".cache/huggingface"),
    ]
    return [
        MountSpec(source=source, destination=f"{CONTAINER_HOME}/{relative}", read_only=True)
        for source, relative in pairs
    ]


def discover_host_config_mounts(
    home_dir: str,
    lookup_env: LookupEnv,
    exists: PathExists = path_exists,
) -> list[MountSpec]:
    found: list[MountSpec] = []
    seen_sources: set[str] = set()
    for candidate in config_mount_candidates(home_dir, lookup_env):
        if not candidate.source or not exists(candidate.source):
            continue
        source = os.path.abspath(candidate.source)
        if source in seen_sources:
            LOGGER.debug("Skipping duplicate config source %s for %s", source, candidate.destination)
            continue
        seen_sources.add(source)
        found.append(MountSpec(source=source, destination=candidate.destination, read_only=True))

    found.sort(key=lambda mount: mount.destination)
    for mount in found:
        LOGGER.debug("Discovered host config %s -> %s", mount.source, mount.destination)
    return found
