"""User and group lookups shared by the source adapters."""

import os


def user_name(uid) -> str:
    """Login name of a numeric user id; empty if unknown."""
    import pwd

    try:
        return pwd.getpwuid(int(uid)).pw_name
    except (KeyError, ValueError):
        return ""


def group_name(gid) -> str:
    """Name of a numeric group id; empty if unknown."""
    import grp

    try:
        return grp.getgrgid(int(gid)).gr_name
    except (KeyError, ValueError):
        return ""


def is_elevated() -> bool:
    """Whether this process runs with administrator rights."""
    if hasattr(os, "geteuid"):
        return os.geteuid() == 0 or "SUDO_COMMAND" in os.environ
    # Only administrators can see the system account's profile
    windir = os.environ.get("windir", "C:\\Windows")
    return os.path.isdir(os.path.join(windir, "system32", "config", "systemprofile"))
