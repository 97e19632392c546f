"""
Operating system identity resolution.

Distributions publish their name and version in several places, none of
which is present everywhere. The resolver tries them in a fixed order of
decreasing reliability and folds the results: each strategy only fills the
fields that earlier strategies left empty.

1. /etc/system-release (Fedora, CentOS, Amazon Linux)
2. /etc/os-release (freedesktop standard)
3. ``lsb_release -a``
4. /etc/lsb-release
5. any other /etc/*-release or *-version file, then /etc/release, then
   /etc/issue; the family may be derived from the file name itself
6. the host environment's version string
"""

import logging
import platform
import re
from collections.abc import Callable, Sequence

from sysfacts.models import OSIdentity
from sysfacts.sources import RawSourceAdapter

logger = logging.getLogger(__name__)

Strategy = Callable[[RawSourceAdapter, OSIdentity], OSIdentity]

ETC = "/etc"
SYSTEM_RELEASE = "/etc/system-release"
OS_RELEASE = "/etc/os-release"
LSB_RELEASE = "/etc/lsb-release"
PROC_VERSION = "/proc/version"

RELEASE_SUFFIXES = ("-release", "-version", "_release", "_version")
RELEASE_EXCLUDED = ("os-release", "lsb-release", "system-release")

# Historical release file stems whose family name can't be guessed
FAMILY_BY_FILENAME = {
    "": "Solaris",
    "blackcat": "Black Cat",
    "bluewhite64": "BlueWhite64",
    "e-smith": "SME Server",
    "eos": "FreeEOS",
    "hlfs": "HLFS",
    "lfs": "Linux-From-Scratch",
    "linuxppc": "Linux-PPC",
    "meego": "MeeGo",
    "mandakelinux": "Mandrake",
    "mklinux": "MkLinux",
    "nld": "Novell Linux Desktop",
    "novell": "SUSE Linux",
    "suse": "SuSE",
    "pld": "PLD",
    "redhat": "Red Hat Linux",
    "sles": "SUSE Linux ES9",
    "sun": "Sun JDS",
    "synoinfo": "Synology",
    "tinysofa": "Tiny Sofa",
    "turbolinux": "TurboLinux",
    "ultrapenguin": "UltraPenguin",
    "va": "VA-Linux",
    "vmware": "VMWareESX",
    "yellowdog": "Yellow Dog",
    "issue": "Unknown",
}

_PARENS = re.compile(r"[()]")


def strip_quotes(value: str) -> str:
    """Remove one leading and one trailing double quote, then whitespace."""
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value.strip()


def _drop_trailing_blanks(parts: list[str]) -> list[str]:
    while parts and not parts[-1].strip():
        parts.pop()
    return parts


def split_version(value: str) -> tuple[str, str]:
    """
    Split an os-release VERSION value into (version, code name).

    ``17 (Beefy Miracle)`` and ``14.04.4 LTS, Trusty Tahr`` both work.
    """
    parts = _drop_trailing_blanks(_PARENS.split(value))
    if len(parts) <= 1:
        parts = _drop_trailing_blanks(value.split(", "))
    version = parts[0].strip() if parts else ""
    code_name = parts[1].strip() if len(parts) > 1 else ""
    return version, code_name


def parse_release(line: str, token: str) -> OSIdentity:
    """Parse ``<family> <token> <version> (<code name>)``."""
    family, _, rest = line.partition(token)
    version, code_name = "", ""
    if rest:
        parts = _drop_trailing_blanks(_PARENS.split(rest))
        if parts:
            version = parts[0].strip()
        if len(parts) > 1:
            code_name = parts[1].strip()
    return OSIdentity(family=family.strip(), version=version, code_name=code_name)


def read_distrib_release(adapter: RawSourceAdapter, path: str) -> OSIdentity:
    """Read a ``Distributor release x.x (Codename)`` style file."""
    for line in adapter.read_text_file(path) or []:
        logger.debug("%s: %s", path, line)
        if " release " in line:
            return parse_release(line, " release ")
        if " VERSION " in line:
            return parse_release(line, " VERSION ")
    return OSIdentity()


def from_system_release(adapter: RawSourceAdapter, identity: OSIdentity) -> OSIdentity:
    """Read /etc/system-release, present on Red Hat derived systems."""
    return identity.merge(read_distrib_release(adapter, SYSTEM_RELEASE))


def from_os_release(adapter: RawSourceAdapter, identity: OSIdentity) -> OSIdentity:
    """Read NAME, VERSION and VERSION_ID from /etc/os-release."""
    family = version = code_name = version_id = ""
    for line in adapter.read_text_file(OS_RELEASE) or []:
        if line.startswith("VERSION=") and not version:
            logger.debug("os-release: %s", line)
            version, code_name = split_version(strip_quotes(line[len("VERSION=") :]))
        elif line.startswith("NAME=") and not family:
            logger.debug("os-release: %s", line)
            family = strip_quotes(line[len("NAME=") :])
        elif line.startswith("VERSION_ID=") and not version_id:
            logger.debug("os-release: %s", line)
            version_id = strip_quotes(line[len("VERSION_ID=") :])
    return identity.merge(
        OSIdentity(family=family, version=version or version_id, code_name=code_name)
    )


def _from_key_values(
    lines: Sequence[str],
    description_key: str,
    keys: dict[str, str],
    unquote: bool,
) -> OSIdentity:
    """
    Shared parsing for ``lsb_release -a`` output and /etc/lsb-release.

    A description in ``<family> release <version>`` form takes precedence;
    the discrete keys fill whatever it didn't provide.
    """
    described = OSIdentity()
    found: dict[str, str] = {}
    for line in lines:
        if line.startswith(description_key):
            value = line[len(description_key) :]
            value = strip_quotes(value) if unquote else value.strip()
            logger.debug("lsb: %s", line)
            if " release " in value and not described.family:
                described = parse_release(value, " release ")
            continue
        for key, field_name in keys.items():
            if line.startswith(key) and field_name not in found:
                value = line[len(key) :]
                found[field_name] = strip_quotes(value) if unquote else value.strip()
                logger.debug("lsb: %s", line)
    return described.merge(OSIdentity(**found))


def from_lsb_release_command(adapter: RawSourceAdapter, identity: OSIdentity) -> OSIdentity:
    """Run ``lsb_release -a``; contributes nothing if it isn't installed."""
    lines = adapter.run_command(["lsb_release", "-a"]) or []
    contribution = _from_key_values(
        lines,
        "Description:",
        {"Distributor ID:": "family", "Release:": "version", "Codename:": "code_name"},
        unquote=False,
    )
    return identity.merge(contribution)


def from_lsb_release_file(adapter: RawSourceAdapter, identity: OSIdentity) -> OSIdentity:
    """Read the quoted DISTRIB_* keys of /etc/lsb-release."""
    lines = adapter.read_text_file(LSB_RELEASE) or []
    contribution = _from_key_values(
        lines,
        "DISTRIB_DESCRIPTION=",
        {
            "DISTRIB_ID=": "family",
            "DISTRIB_RELEASE=": "version",
            "DISTRIB_CODENAME=": "code_name",
        },
        unquote=True,
    )
    return identity.merge(contribution)


def release_filename(adapter: RawSourceAdapter) -> str:
    """Find a distribution-specific release file in /etc."""
    for name in adapter.list_directory(ETC) or []:
        if name.endswith(RELEASE_SUFFIXES) and not name.endswith(RELEASE_EXCLUDED):
            return f"{ETC}/{name}"
    if adapter.read_text_file(f"{ETC}/release") is not None:
        return f"{ETC}/release"
    return f"{ETC}/issue"


def filename_to_family(filename: str) -> str:
    """Derive a family name from a release file name."""
    stem = filename.replace(f"{ETC}/", "")
    for decoration in ("release", "version", "-", "_"):
        stem = stem.replace(decoration, "")
    family = FAMILY_BY_FILENAME.get(stem.lower())
    if family is not None:
        return family
    return stem[:1].upper() + stem[1:]


def from_release_file(adapter: RawSourceAdapter, identity: OSIdentity) -> OSIdentity:
    """
    Read the first distribution-specific release file found.

    If the file doesn't name the family, it is derived from the file name.
    """
    filename = release_filename(adapter)
    identity = identity.merge(read_distrib_release(adapter, filename))
    if not identity.family:
        identity = identity.merge(OSIdentity(family=filename_to_family(filename)))
    return identity


def from_proc_version(adapter: RawSourceAdapter, identity: OSIdentity) -> OSIdentity:
    """Take the kernel build from the first line of /proc/version."""
    lines = adapter.read_text_file(PROC_VERSION)
    if not lines:
        return identity
    for token in lines[0].split():
        if token not in ("Linux", "version"):
            return identity.merge(OSIdentity(build_number=token))
    return identity


def from_platform(adapter: RawSourceAdapter, identity: OSIdentity) -> OSIdentity:
    """Identity of a non-Linux host as reported by the Python runtime."""
    system = platform.system()
    if system == "Darwin":
        return identity.merge(
            OSIdentity(
                family="macOS",
                version=platform.mac_ver()[0] or platform.release(),
                build_number=platform.version(),
            )
        )
    return identity.merge(
        OSIdentity(family=system, version=platform.release(), build_number=platform.version())
    )


# Strictly ordered by decreasing reliability
LINUX_STRATEGIES: tuple[Strategy, ...] = (
    from_system_release,
    from_os_release,
    from_lsb_release_command,
    from_lsb_release_file,
    from_release_file,
)
LINUX_SUPPLEMENTS: tuple[Strategy, ...] = (from_proc_version,)
PLATFORM_STRATEGIES: tuple[Strategy, ...] = (from_platform,)


class OSIdentityResolver:
    """
    Resolve the OS identity through an ordered cascade of strategies.

    Strategies run until both family and version are known. Supplements
    (currently the kernel build number) always run afterwards, and the
    environment version fills an empty version last.
    """

    def __init__(
        self,
        adapter: RawSourceAdapter,
        strategies: Sequence[Strategy] = LINUX_STRATEGIES,
        supplements: Sequence[Strategy] = LINUX_SUPPLEMENTS,
        env_version: Callable[[], str] = platform.release,
    ) -> None:
        self._adapter = adapter
        self._strategies = tuple(strategies)
        self._supplements = tuple(supplements)
        self._env_version = env_version

    def _apply(self, strategy: Strategy, identity: OSIdentity) -> OSIdentity:
        try:
            return strategy(self._adapter, identity)
        except Exception as e:
            # Malformed data must not abort the cascade
            logger.warning("OS identity strategy %s failed: %s", strategy.__name__, e)
            return identity

    def resolve(self) -> OSIdentity:
        """Resolve the identity. Never raises."""
        identity = OSIdentity()
        for strategy in self._strategies:
            if identity.is_complete:
                break
            identity = self._apply(strategy, identity)
        for supplement in self._supplements:
            identity = self._apply(supplement, identity)
        if not identity.version:
            try:
                version = self._env_version()
            except Exception as e:
                logger.warning("Can't read environment version: %s", e)
                version = ""
            identity = identity.merge(OSIdentity(version=version or "unknown"))
        logger.debug("Resolved OS identity: %s", identity)
        return identity
