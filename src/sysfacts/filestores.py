"""Mounted file system enumeration."""

import logging

import psutil

from sysfacts.counters import to_signed
from sysfacts.models import FileStore

logger = logging.getLogger(__name__)

# Pseudo file systems that carry no storage
PSEUDO_FS_TYPES = frozenset(
    {
        "autofs",
        "binfmt_misc",
        "cgroup",
        "cgroup2",
        "configfs",
        "debugfs",
        "devpts",
        "devtmpfs",
        "fusectl",
        "hugetlbfs",
        "mqueue",
        "nsfs",
        "overlay",
        "proc",
        "pstore",
        "securityfs",
        "squashfs",
        "sysfs",
        "tracefs",
    }
)


def collect_file_stores(local_only: bool = True) -> list[FileStore]:
    """
    Collect mounted file systems with their space totals.

    A mount whose usage can't be read (stale network mount, permissions)
    is still reported with zero totals.
    """
    try:
        partitions = psutil.disk_partitions(all=not local_only)
    except (psutil.Error, OSError) as e:
        logger.warning("Failed to enumerate file systems: %s", e)
        return []

    stores = []
    for part in partitions:
        if local_only and part.fstype in PSEUDO_FS_TYPES:
            continue
        total = free = usable = 0
        try:
            usage = psutil.disk_usage(part.mountpoint)
            total, usable = usage.total, usage.free
            free = usage.total - usage.used
        except (psutil.Error, OSError) as e:
            logger.debug("Can't read usage of %s: %s", part.mountpoint, e)
        stores.append(
            FileStore(
                name=part.device,
                mount=part.mountpoint,
                fs_type=part.fstype,
                options=part.opts,
                total_space=to_signed(total),
                free_space=to_signed(free),
                usable_space=to_signed(usable),
            )
        )
    return stores
