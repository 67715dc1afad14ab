from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path

import sys

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import dockerx.config_mounts as config_mounts
from dockerx.mounts import CONTAINER_HOME, MountSpec


def _mkdir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("x", encoding="utf-8")


class DiscoverHostConfigMountsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.home = Path(self.tmp.name)
        self.config_home = self.home / ".config"
        self.cache_home = self.home / ".cache"

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _discover(self, env: dict[str, str]) -> list[MountSpec]:
        return config_mounts.discover_host_config_mounts(str(self.home), env.get, config_mounts.path_exists)

    def _assert_mount(self, mounts: list[MountSpec], src: Path, dst: str) -> None:
        expected = MountSpec(source=os.path.abspath(str(src)), destination=dst, read_only=True)
        self.assertIn(expected, mounts, msg=f"mounts={mounts}")

    def test_discovers_existing_locations(self) -> None:
        _mkdir(self.home / ".codex")
        _mkdir(self.config_home / "gh")
        _mkdir(self.home / ".ssh")
        _mkdir(self.cache_home / "huggingface")
        _touch(self.home / ".gitconfig")

        mounts = self._discover(
            {
                "XDG_CONFIG_HOME": str(self.config_home),
                "XDG_CACHE_HOME": str(self.cache_home),
            }
        )

        self.assertEqual(len(mounts), 5)
        self._assert_mount(mounts, self.home / ".codex", f"{CONTAINER_HOME}/.codex")
        self._assert_mount(mounts, self.config_home / "gh", f"{CONTAINER_HOME}/.config/gh")
        self._assert_mount(mounts, self.home / ".ssh", f"{CONTAINER_HOME}/.ssh")
        self._assert_mount(mounts, self.cache_home / "huggingface", f"{CONTAINER_HOME}/.cache/huggingface")
        self._assert_mount(mounts, self.home / ".gitconfig", f"{CONTAINER_HOME}/.gitconfig")

    def test_ssh_gitconfig_and_cache_huggingface_with_overrides(self) -> None:
        custom_cache = self.home / "custom-cache"
        _mkdir(self.home / ".ssh")
        _touch(self.home / ".gitconfig")
        _mkdir(custom_cache / "huggingface")

        mounts = self._discover(
            {
                "XDG_CONFIG_HOME": str(self.home / "custom-config"),
                "XDG_CACHE_HOME": str(custom_cache),
            }
        )

        self.assertEqual(
            [mount.destination for mount in mounts],
            [
                f"{CONTAINER_HOME}/.cache/huggingface",
                f"{CONTAINER_HOME}/.gitconfig",
                f"{CONTAINER_HOME}/.ssh",
            ],
        )
        self.assertTrue(all(mount.read_only for mount in mounts))
        self._assert_mount(mounts, custom_cache / "huggingface", f"{CONTAINER_HOME}/.cache/huggingface")

    def test_output_is_sorted_by_destination(self) -> None:
        for name in (".ssh", ".codex", ".openai", ".huggingface"):
            _mkdir(self.home / name)
        _mkdir(self.config_home / "git")

        mounts = self._discover({})

        destinations = [mount.destination for mount in mounts]
        self.assertEqual(destinations, sorted(destinations))
        self.assertEqual(len(destinations), 5)

    def test_duplicate_sources_keep_first_candidate(self) -> None:
        shared = self.config_home / "huggingface"
        _mkdir(shared)
        _mkdir(self.config_home / "x")

        mounts = self._discover(
            {
                "XDG_CONFIG_HOME": str(self.config_home),
                "HF_HOME": str(self.config_home / "x" / ".." / "huggingface"),
            }
        )

        self.assertEqual(mounts, [MountSpec(str(shared), f"{CONTAINER_HOME}/.config/huggingface", True)])
        sources = [mount.source for mount in mounts]
        self.assertEqual(len(sources), len(set(sources)))

    def test_codex_home_override_wins(self) -> None:
        codex_home = self.home / "elsewhere" / "codex"
        _mkdir(codex_home)
        _mkdir(self.home / ".codex")

        mounts = self._discover({"CODEX_HOME": str(codex_home)})

        self.assertEqual(mounts, [MountSpec(str(codex_home), f"{CONTAINER_HOME}/.codex", True)])

    def test_relative_sources_are_made_absolute(self) -> None:
        seen: list[str] = []

        def exists(path: str) -> bool:
            seen.append(path)
            return path == "relative/codex"

        mounts = config_mounts.discover_host_config_mounts(
            str(self.home),
            {"CODEX_HOME": "relative/codex"}.get,
            exists,
        )

        self.assertEqual(len(mounts), 1)
        self.assertEqual(mounts[0].source, os.path.abspath("relative/codex"))
        self.assertIn("relative/codex", seen)

    def test_no_existing_locations_yields_nothing(self) -> None:
        self.assertEqual(self._discover({}), [])

    def test_candidates_follow_fixed_priority_order(self) -> None:
        candidates = config_mounts.config_mount_candidates("/home/host", {}.get)

        self.assertEqual(candidates[0].source, "/home/host/.codex")
        self.assertEqual(candidates[-1].source, "/home/host/.cache/huggingface")
        self.assertEqual(len(candidates), 11)
        self.assertTrue(all(candidate.destination.startswith(f"{CONTAINER_HOME}/") for candidate in candidates))


if __name__ == "__main__":
    unittest.main()
