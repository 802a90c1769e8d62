"""Tests for executable discovery over a search path."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from conftest import make_exe

from btb.discovery import (
    discover_executables,
    filter_search_dirs,
    is_search_dir,
    search_path_from_env,
    walk_directory,
)
from btb.errors import DiscoveryError, MissingEnvironmentError
from btb.permissions import UserIdentity
from btb.types import MARKER_NAME

ME = UserIdentity.current()


class TestSearchPathFromEnv:
    def test_splits_on_pathsep(self):
        assert search_path_from_env({"PATH": "/usr/bin:/bin"}) == ["/usr/bin", "/bin"]

    def test_drops_empty_entries(self):
        assert search_path_from_env({"PATH": ":/usr/bin::/bin:"}) == ["/usr/bin", "/bin"]

    def test_missing_path_is_fatal(self):
        with pytest.raises(MissingEnvironmentError):
            search_path_from_env({})


class TestFilterSearchDirs:
    def test_keeps_existing_directories_in_order(self, tmp_path):
        a, b = tmp_path / "a", tmp_path / "b"
        a.mkdir()
        b.mkdir()
        assert filter_search_dirs([str(b), str(a)]) == [(0, str(b)), (1, str(a))]

    def test_drops_missing_directory_keeping_ranks(self, tmp_path):
        a = tmp_path / "a"
        a.mkdir()
        assert filter_search_dirs([str(tmp_path / "nope"), str(a)]) == [(1, str(a))]

    def test_drops_regular_file(self, tmp_path):
        f = tmp_path / "file"
        f.write_text("")
        assert not is_search_dir(str(f))

    def test_drops_directory_with_marker(self, tmp_path):
        out = tmp_path / "out"
        out.mkdir()
        (out / MARKER_NAME).touch()
        assert filter_search_dirs([str(out)]) == []

    def test_stat_failure_is_fatal(self, tmp_path):
        real_stat = os.stat
        target = str(tmp_path / "locked")

        def _stat(path, *args, **kwargs):
            if path == target:
                raise PermissionError(13, "Permission denied", path)
            return real_stat(path, *args, **kwargs)

        with patch("btb.discovery.os.stat", side_effect=_stat), pytest.raises(DiscoveryError):
            is_search_dir(target)


class TestWalkDirectory:
    def test_collects_executables_sorted(self, tmp_path):
        make_exe(tmp_path, "zeta")
        make_exe(tmp_path, "alpha")
        assert walk_directory(str(tmp_path), ME) == [
            str(tmp_path / "alpha"),
            str(tmp_path / "zeta"),
        ]

    def test_skips_non_executable(self, tmp_path):
        make_exe(tmp_path, "data", mode=0o644)
        assert walk_directory(str(tmp_path), ME) == []

    def test_does_not_descend_into_subdirectories(self, tmp_path):
        make_exe(tmp_path / "sub", "hidden")
        (tmp_path / "sub").chmod(0o755)
        assert walk_directory(str(tmp_path), ME) == []

    def test_symlink_to_directory_is_skipped(self, tmp_path):
        real = tmp_path / "real"
        make_exe(real, "inside")
        walked = tmp_path / "walked"
        walked.mkdir()
        (walked / "link").symlink_to(real, target_is_directory=True)
        assert walk_directory(str(walked), ME) == []

    def test_symlink_to_executable_keeps_link_path(self, tmp_path):
        target = make_exe(tmp_path / "opt", "tool")
        walked = tmp_path / "bin"
        walked.mkdir()
        (walked / "tool").symlink_to(target)
        assert walk_directory(str(walked), ME) == [str(walked / "tool")]

    def test_dangling_symlink_is_skipped(self, tmp_path):
        (tmp_path / "broken").symlink_to(tmp_path / "missing")
        make_exe(tmp_path, "ok")
        assert walk_directory(str(tmp_path), ME) == [str(tmp_path / "ok")]

    def test_unreadable_directory_is_fatal(self, tmp_path):
        with (
            patch("btb.discovery.os.scandir", side_effect=PermissionError(13, "denied")),
            pytest.raises(DiscoveryError, match="Cannot read directory"),
        ):
            walk_directory(str(tmp_path), ME)


class TestDiscoverExecutables:
    def test_first_directory_wins_on_collision(self, tmp_path):
        usr_bin = tmp_path / "usr" / "bin"
        usr_local_bin = tmp_path / "usr" / "local" / "bin"
        make_exe(usr_bin, "foo")
        make_exe(usr_local_bin, "foo")

        found = discover_executables([str(usr_bin), str(usr_local_bin)], ME)

        assert found["foo"].path == str(usr_bin / "foo")
        assert found["foo"].rank == 0

    def test_first_directory_wins_across_many(self, tmp_path):
        dirs = [tmp_path / f"d{i}" for i in range(5)]
        for d in dirs[2:]:
            make_exe(d, "tool")
        dirs[0].mkdir()
        dirs[1].mkdir()

        found = discover_executables([str(d) for d in dirs], ME)

        assert found["tool"].path == str(dirs[2] / "tool")
        assert found["tool"].rank == 2

    def test_unique_names_from_every_directory(self, tmp_path):
        make_exe(tmp_path / "a", "one")
        make_exe(tmp_path / "b", "two")
        found = discover_executables([str(tmp_path / "a"), str(tmp_path / "b")], ME)
        assert sorted(found) == ["one", "two"]
        assert found["two"].rank == 1

    def test_marker_directory_never_contributes(self, tmp_path):
        shims = tmp_path / "shims"
        make_exe(shims, "myprefix-foo")
        (shims / MARKER_NAME).touch()
        make_exe(tmp_path / "bin", "foo")

        found = discover_executables([str(shims), str(tmp_path / "bin")], ME)

        assert list(found) == ["foo"]

    def test_missing_directories_are_ignored(self, tmp_path):
        make_exe(tmp_path / "bin", "foo")
        found = discover_executables([str(tmp_path / "gone"), str(tmp_path / "bin")], ME)
        assert found["foo"].rank == 1

    def test_walk_error_gives_no_partial_result(self, tmp_path):
        make_exe(tmp_path / "a", "one")
        (tmp_path / "b").mkdir()
        real_walk = walk_directory

        def _walk(directory, user):
            if directory.endswith("b"):
                raise DiscoveryError("boom")
            return real_walk(directory, user)

        with patch("btb.discovery.walk_directory", side_effect=_walk), pytest.raises(DiscoveryError):
            discover_executables([str(tmp_path / "a"), str(tmp_path / "b")], ME)
