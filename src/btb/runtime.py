"""Container runtime wrapper around the ``toolbox`` CLI.

Only the ``run`` operation is used: ``toolbox run -c <container> <cmd...>``
executes a command inside the container's filesystem and PATH namespace.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass

from btb.errors import SessionError
from btb.logger import logger


@dataclass(frozen=True)
class ContainerRuntime:
    cli: str = "toolbox"

    def is_available(self) -> bool:
        return shutil.which(self.cli) is not None

    def ensure_available(self) -> None:
        if not self.is_available():
            raise SessionError(f"Container runtime '{self.cli}' not found on PATH")
        logger.debug("Container runtime found", cli=self.cli)

    def run_argv(self, container: str, *command: str) -> list[str]:
        return [self.cli, "run", "-c", container, *command]
