"""Outer/inner dispatch.

One invocation is either the host run (open a container session and
re-run btb inside it) or the in-container run (discover executables and
write shims). ``dispatch`` picks once, from ``Invocation.mode``.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
from collections.abc import Callable, Mapping
from typing import BinaryIO, TextIO

from btb.config import Settings
from btb.discovery import discover_executables, search_path_from_env
from btb.errors import MissingEnvironmentError
from btb.logger import logger
from btb.permissions import UserIdentity
from btb.runtime import ContainerRuntime
from btb.session import SessionDriver, open_user_input
from btb.shims import ShimDirectory
from btb.types import SENTINEL, Invocation, Mode

OwnCommandResolver = Callable[[], list[str]]


def resolve_own_command(
    argv0: str | None = None,
    executable: str | None = None,
) -> list[str]:
    """Argv prefix that re-runs this program.

    ``python -m btb`` resolves to the interpreter plus ``-m btb``. The
    interpreter path is not resolved, since a venv python is a symlink to the
    base interpreter. A console script resolves to the script itself, with
    symlinks followed.
    """
    argv0 = sys.argv[0] if argv0 is None else argv0
    executable = sys.executable if executable is None else executable

    if os.path.basename(argv0) == "__main__.py":
        if not executable:
            raise MissingEnvironmentError("Cannot determine the Python interpreter path")
        return [os.path.abspath(executable), "-m", "btb"]

    path = argv0 if os.sep in argv0 else shutil.which(argv0)
    if not path or not os.path.exists(path):
        raise MissingEnvironmentError(f"Cannot resolve own executable from {argv0!r}")
    return [os.path.realpath(path)]


async def run_outer(
    invocation: Invocation,
    settings: Settings,
    *,
    resolve_self: OwnCommandResolver = resolve_own_command,
    user_input: BinaryIO | None = None,
    user_output: BinaryIO | None = None,
) -> None:
    """Host side: drive the container session until the inner run finishes."""
    runtime = ContainerRuntime(cli=settings.runtime.cli)
    runtime.ensure_available()
    own_command = resolve_self()
    logger.debug("Resolved own command", command=own_command)

    driver = SessionDriver(
        invocation,
        own_command,
        runtime=runtime,
        config=settings.session,
        user_input=open_user_input(
            sys.stdin.buffer if user_input is None else user_input,
            settings.session.chunk_size,
        ),
        user_output=sys.stdout.buffer if user_output is None else user_output,
    )
    await driver.run()


def run_inner(
    invocation: Invocation,
    *,
    environ: Mapping[str, str] | None = None,
    user: UserIdentity | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> list[str]:
    """Container side: discover executables, rebuild shims, emit the sentinel.

    Returns the shim paths written.
    """
    environ = os.environ if environ is None else environ
    user = user or UserIdentity.current()
    stdin = sys.stdin if stdin is None else stdin
    stdout = sys.stdout if stdout is None else stdout

    search_path = search_path_from_env(environ)
    logger.debug("Search path", directories=search_path)
    executables = discover_executables(search_path, user)

    shims = ShimDirectory(invocation, prompt_in=stdin, prompt_out=stdout)
    written = shims.rebuild(executables)

    print(SENTINEL, file=stdout, flush=True)
    return [str(p) for p in written]


def dispatch(invocation: Invocation, settings: Settings) -> None:
    match invocation.mode:
        case Mode.OUTER:
            asyncio.run(run_outer(invocation, settings))
        case Mode.INNER:
            run_inner(invocation)
