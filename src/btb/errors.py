"""Fatal error taxonomy.

Nothing is recovered locally. Components raise one of these and the CLI
entry point logs it once and exits with the class's ``exit_code``.
"""

from __future__ import annotations


class BtbError(Exception):
    """Base for every condition that ends the run."""

    exit_code: int = 1


class MissingEnvironmentError(BtbError):
    """Own executable path or PATH could not be determined."""

    exit_code = 3


class DiscoveryError(BtbError):
    """A search-path directory could not be stat'ed or walked."""

    exit_code = 3


class ConfirmationError(BtbError):
    """The user refused, or failed to confirm, removal of the shim directory."""

    exit_code = 4


class SessionError(BtbError):
    """The container session failed to start or ended before completing."""

    exit_code = 5


class SessionTimeoutError(SessionError):
    """The container session outlived its timeout and was stopped."""


class ShimWriteError(BtbError):
    """The shim directory, its marker or a shim file could not be written."""

    exit_code = 6
