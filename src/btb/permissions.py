"""Decide whether a user may execute a filesystem entry.

Only the execute bits are consulted. The other bit grants on its own; the
group and owner bits grant when the entry's gid/uid match the user. Unlike
the kernel, an owner match does not stop the group bit from granting.
"""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class UserIdentity:
    uid: int
    gid: int  # primary group

    @classmethod
    def current(cls) -> UserIdentity:
        return cls(uid=os.getuid(), gid=os.getgid())


def can_execute(user: UserIdentity, st: Any) -> bool:
    """Return True if ``user`` may execute an entry with stat result ``st``.

    ``st`` is anything shaped like ``os.stat_result``. Without ownership
    metadata (no ``st_uid``/``st_gid``) only the other bit can grant.
    """
    mode = st.st_mode

    if mode & stat.S_IXOTH:
        return True

    uid = getattr(st, "st_uid", None)
    gid = getattr(st, "st_gid", None)
    if uid is None or gid is None:
        return False

    if mode & stat.S_IXGRP and gid == user.gid:
        return True

    if mode & stat.S_IXUSR and uid == user.uid:
        return True

    return False
