"""Data models for btb."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, field_validator

# Written by the in-container run once every shim file exists.
SENTINEL = "<<<Done>>>"

# Zero-byte file flagging a directory as btb output.
MARKER_NAME = ".btbMarker"


class Mode(enum.Enum):
    OUTER = "outer"  # host: drive the container session
    INNER = "inner"  # container: discover and write shims


class Invocation(BaseModel):
    """Flags of one run. Built once from argv, never mutated."""

    model_config = {"frozen": True, "extra": "forbid"}

    bin_path: Path
    prefix: str
    container: str
    in_container: bool = False

    @field_validator("prefix", "container")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("prefix")
    @classmethod
    def _no_separator(cls, v: str) -> str:
        if "/" in v:
            raise ValueError("must not contain '/'")
        return v

    @property
    def mode(self) -> Mode:
        return Mode.INNER if self.in_container else Mode.OUTER

    @property
    def output_dir(self) -> Path:
        return self.bin_path / self.prefix

    def inner_args(self) -> list[str]:
        """Flags that re-run this invocation inside the container."""
        return [
            "--binpath",
            str(self.bin_path),
            "--prefix",
            self.prefix,
            "--container",
            self.container,
            "--in-container",
        ]


@dataclass(frozen=True)
class DiscoveredExecutable:
    name: str  # basename of path
    path: str  # absolute path inside the container
    rank: int  # index of the source directory in the search path
