"""Executable discovery over a search path.

Directories are walked in reverse search-path order and the name mapping is
built with last-write-wins, so the executable from the earliest directory
shadows later ones exactly like PATH lookup. Any filesystem error aborts the
whole pass; a partial shim set is worse than none.
"""

from __future__ import annotations

import os
import stat
from collections.abc import Mapping, Sequence

from btb.errors import DiscoveryError, MissingEnvironmentError
from btb.logger import logger
from btb.permissions import UserIdentity, can_execute
from btb.types import MARKER_NAME, DiscoveredExecutable


def search_path_from_env(environ: Mapping[str, str]) -> list[str]:
    """Split PATH into directories, dropping empty entries."""
    raw = environ.get("PATH")
    if raw is None:
        raise MissingEnvironmentError("PATH is not set")
    return [p for p in raw.split(os.pathsep) if p]


def is_search_dir(path: str) -> bool:
    """True for existing directories that are not btb output directories."""
    try:
        st = os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as exc:
        raise DiscoveryError(f"Cannot stat {path}: {exc}") from exc

    if not stat.S_ISDIR(st.st_mode):
        return False

    if os.path.lexists(os.path.join(path, MARKER_NAME)):
        logger.debug("Skipping btb output directory", directory=path)
        return False
    return True


def filter_search_dirs(dirs: Sequence[str]) -> list[tuple[int, str]]:
    """Searchable directories paired with their position in ``dirs``."""
    return [(rank, d) for rank, d in enumerate(dirs) if is_search_dir(d)]


def walk_directory(directory: str, user: UserIdentity) -> list[str]:
    """Paths of executable regular files directly inside ``directory``.

    Subdirectories (and symlinks to directories) are skipped, not descended.
    """
    directory = os.path.abspath(directory)
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise DiscoveryError(f"Cannot read directory {directory}: {exc}") from exc

    found: list[str] = []
    for entry in entries:
        try:
            if entry.is_dir():
                continue
            st = entry.stat()
        except FileNotFoundError as exc:
            if not entry.is_symlink():
                raise DiscoveryError(f"Cannot stat {entry.path}: {exc}") from exc
            logger.debug("Skipping dangling symlink", path=entry.path)
            continue
        except OSError as exc:
            raise DiscoveryError(f"Cannot stat {entry.path}: {exc}") from exc

        if stat.S_ISREG(st.st_mode) and can_execute(user, st):
            found.append(entry.path)
    return found


def discover_executables(
    dirs: Sequence[str],
    user: UserIdentity,
) -> dict[str, DiscoveredExecutable]:
    """Map executable names to the executable found first along ``dirs``."""
    ranked = filter_search_dirs(dirs)
    ranked.reverse()

    collected: list[tuple[int, str]] = []
    for rank, directory in ranked:
        collected.extend((rank, path) for path in walk_directory(directory, user))

    executables: dict[str, DiscoveredExecutable] = {}
    for rank, path in collected:
        name = os.path.basename(path)
        executables[name] = DiscoveredExecutable(name=name, path=path, rank=rank)

    logger.info(
        "Executables discovered",
        count=len(executables),
        directories=len(ranked),
    )
    return executables
