"""Entry point for `btb` / `python -m btb`.

    btb --binpath ~/.local/bin --prefix f35 --container fedora-toolbox-35

On the host this opens a session in the container and re-runs itself there
with ``--in-container``; that inner run writes ``~/.local/bin/f35/f35-<name>``
for every executable on the container's PATH.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from pydantic import ValidationError

from btb.app import dispatch
from btb.config import Settings, get_settings
from btb.errors import BtbError
from btb.logger import logger, set_level
from btb.types import Invocation


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="btb",
        description="Create host launchers for every executable in a toolbox container",
    )
    parser.add_argument(
        "--binpath",
        required=True,
        type=Path,
        help="Directory that will hold the <prefix> shim directory",
    )
    parser.add_argument(
        "--prefix",
        required=True,
        help="Shim directory name and shim file name prefix",
    )
    parser.add_argument("--container", required=True, help="Toolbox container name")
    parser.add_argument(
        "--in-container",
        action="store_true",
        help="Run the discovery half (used by btb itself inside the container)",
    )
    parser.add_argument("--shell", help="Shell to start inside the container")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds before the container session is stopped",
    )
    return parser


def parse_invocation(
    parser: argparse.ArgumentParser, argv: list[str] | None = None
) -> tuple[Invocation, argparse.Namespace]:
    args = parser.parse_args(argv)
    try:
        invocation = Invocation(
            bin_path=args.binpath,
            prefix=args.prefix,
            container=args.container,
            in_container=args.in_container,
        )
    except ValidationError as exc:
        parser.error(str(exc))
    return invocation, args


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Fold --shell/--timeout into the session settings."""
    update: dict[str, object] = {}
    if args.shell:
        update["shell"] = args.shell
    if args.timeout is not None:
        update["timeout_ms"] = max(1, int(args.timeout * 1000))
    if not update:
        return settings
    session = settings.session.model_copy(update=update)
    return settings.model_copy(update={"session": session})


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    invocation, args = parse_invocation(parser, argv)

    settings = apply_overrides(get_settings(), args)
    if settings.logging.level:
        set_level(settings.logging.level)

    try:
        dispatch(invocation, settings)
    except BtbError as exc:
        logger.error(str(exc), error=type(exc).__name__, mode=invocation.mode.value)
        sys.exit(exc.exit_code)
    sys.exit(0)


if __name__ == "__main__":
    main()
