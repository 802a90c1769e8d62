"""btb: host launchers for executables inside toolbox containers."""

__version__ = "0.1.0"
