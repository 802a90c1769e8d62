"""Shim directory lifecycle: confirm removal, then recreate and populate.

The output directory ``{bin_path}/{prefix}`` is owned by btb: it carries a
zero-byte marker and is always rebuilt from scratch. An existing directory
is only removed after the user confirms on the prompt stream.
"""

from __future__ import annotations

import os
import shutil
import stat
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

from btb.errors import ConfirmationError, ShimWriteError
from btb.logger import logger
from btb.types import MARKER_NAME, DiscoveredExecutable, Invocation

SHIM_TEMPLATE = """#!/usr/bin/env bash

toolbox run -c {container} {path} $@
"""

# Invalid answers tolerated before giving up; the next one aborts.
MAX_INVALID_ANSWERS = 3


def render_shim(container: str, path: str) -> str:
    return SHIM_TEMPLATE.format(container=container, path=path)


def shim_name(prefix: str, name: str) -> str:
    return f"{prefix}-{name}"


class ShimDirectory:
    """Owns ``invocation.output_dir`` for the duration of one run.

    ``prompt_in``/``prompt_out`` carry the removal confirmation. Inside a
    container session they are the session's stdin/stdout, relayed to the
    user by the host.
    """

    def __init__(self, invocation: Invocation, *, prompt_in: TextIO, prompt_out: TextIO) -> None:
        self.invocation = invocation
        self.path = invocation.output_dir
        self._in = prompt_in
        self._out = prompt_out

    def _say(self, text: str) -> None:
        # Prompts do not end in a newline; flush so they cross the pipe now.
        self._out.write(text)
        self._out.flush()

    def confirm_removal(self) -> None:
        """Remove an existing output directory once the user says yes."""
        if not os.path.lexists(self.path):
            return

        self._say(f"rmdir: {self.path} (y/n)? ")
        invalid = 0
        while True:
            line = self._in.readline()
            if not line:
                raise ConfirmationError("No answer to removal prompt")

            match line.strip().lower():
                case "y" | "yes":
                    break
                case "n" | "no":
                    raise ConfirmationError("Cannot continue with non-empty directory")
                case _:
                    if invalid == MAX_INVALID_ANSWERS:
                        raise ConfirmationError("Too many incorrect tries. Stopping")
                    self._say("Please enter (y/n): ")
                    invalid += 1

        try:
            shutil.rmtree(self.path)
        except OSError as exc:
            raise ShimWriteError(f"Cannot remove {self.path}: {exc}") from exc
        logger.info("Removed existing shim directory", directory=str(self.path))

    def _parent_mode(self) -> int:
        try:
            return stat.S_IMODE(os.stat(self.invocation.bin_path).st_mode)
        except OSError as exc:
            raise ShimWriteError(f"Cannot stat {self.invocation.bin_path}: {exc}") from exc

    def create(self) -> int:
        """Create the directory and its marker. Returns the mode used for files."""
        mode = self._parent_mode()
        try:
            os.mkdir(self.path, mode)
            fd = os.open(self.path / MARKER_NAME, os.O_CREAT | os.O_WRONLY, mode & 0o666)
            os.close(fd)
        except OSError as exc:
            raise ShimWriteError(f"Cannot create {self.path}: {exc}") from exc
        return mode

    def write_shim(self, executable: DiscoveredExecutable, mode: int) -> Path:
        target = self.path / shim_name(self.invocation.prefix, executable.name)
        contents = render_shim(self.invocation.container, executable.path)
        try:
            fd = os.open(target, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
            with os.fdopen(fd, "w") as f:
                f.write(contents)
        except OSError as exc:
            raise ShimWriteError(f"Cannot write shim {target}: {exc}") from exc
        return target

    def populate(self, executables: Mapping[str, DiscoveredExecutable], mode: int) -> list[Path]:
        return [self.write_shim(executables[name], mode) for name in sorted(executables)]

    def rebuild(self, executables: Mapping[str, DiscoveredExecutable]) -> list[Path]:
        """Confirm, recreate and fill the directory. All or nothing."""
        self.confirm_removal()
        mode = self.create()
        written = self.populate(executables, mode)
        logger.info("Shims written", count=len(written), directory=str(self.path))
        return written
