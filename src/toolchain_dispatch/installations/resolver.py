"""Version-aware lookup of toolchain installation directories."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from toolchain_dispatch.util.logging import get_logger

Version = tuple[int, int]

_STRICT_VERSION = re.compile(r"^\s*(\d+)\.(\d+)(?:\.\d+){0,2}\s*$")
_EMBEDDED_VERSION = re.compile(r"(\d+)\.(\d+)")

_LOGGER = get_logger("toolchain_dispatch.installations")


@dataclass(frozen=True)
class InstallationCandidate:
    """A directory that plausibly holds a usable installation.

    Attributes:
        path: Installation directory.
        version: Parsed ``(major, minor)`` pair.
        raw_version_label: Directory name the version was parsed from.
    """

    path: str
    version: Version
    raw_version_label: str


def parse_version(label: str | None) -> Version | None:
    """Parse a ``major.minor`` version from a plain or decorated label.

    ``"22.0"`` and ``"19.0.1234"`` parse strictly; ``"Studio 22.0"`` falls
    back to the first ``digits.digits`` substring. Returns None when nothing
    matches.
    """

    if label is None or not label.strip():
        return None
    match = _STRICT_VERSION.match(label) or _EMBEDDED_VERSION.search(label)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def select_candidate(
    target: Version, candidates: Sequence[InstallationCandidate]
) -> InstallationCandidate | None:
    """Pick the closest candidate to a target version.

    Order of preference: exact ``(major, minor)`` match, same major with the
    highest minor, the smallest greater major (highest minor within it), and
    finally the overall highest version.
    """

    if not candidates:
        return None
    major, minor = target

    for candidate in candidates:
        if candidate.version == (major, minor):
            return candidate

    same_major = [c for c in candidates if c.version[0] == major]
    if same_major:
        return max(same_major, key=lambda c: c.version[1])

    higher = [c for c in candidates if c.version[0] > major]
    if higher:
        return min(higher, key=lambda c: (c.version[0], -c.version[1]))

    return max(candidates, key=lambda c: c.version)


def find_best_match(target_version: str | None, paths: Iterable[str]) -> str | None:
    """Choose the installation directory best matching ``target_version``.

    Blank and non-existent paths are ignored. A single remaining path is
    returned as is; an unparsable target, or paths whose directory names carry
    no version, fall back to the first path in input order.
    """

    existing = [path for path in paths if path and path.strip() and os.path.isdir(path)]
    if not existing:
        return None
    if len(existing) == 1:
        return existing[0]

    target = parse_version(target_version)
    if target is None:
        return existing[0]

    candidates = []
    for path in existing:
        label = os.path.basename(os.path.normpath(path))
        version = parse_version(label)
        if version is not None:
            candidates.append(InstallationCandidate(path=path, version=version, raw_version_label=label))
    if not candidates:
        return existing[0]

    selected = select_candidate(target, candidates)
    return selected.path if selected is not None else existing[0]


class InstallationResolver:
    """Locate an installation among configured paths and standard roots.

    Configured paths always win over auto-discovery. Discovery scans the
    immediate subdirectories of each standard root whose name parses as a
    version and that contain one of the expected binaries.
    """

    def __init__(
        self,
        standard_roots: Sequence[str],
        *,
        binary_subdir: str = "bin",
        expected_binaries: Sequence[str] = (),
    ) -> None:
        """Initialize the resolver.

        Args:
            standard_roots: Well-known directories holding versioned installations.
            binary_subdir: Sub-path of an installation holding its binaries.
            expected_binaries: File names, one of which must exist in ``binary_subdir``
                for a directory to count as an installation. Empty accepts any
                existing ``binary_subdir``.
        """

        self._standard_roots = tuple(standard_roots)
        self._binary_subdir = binary_subdir
        self._expected_binaries = tuple(expected_binaries)

    @property
    def standard_roots(self) -> tuple[str, ...]:
        return self._standard_roots

    def resolve_install_path(
        self,
        target_version: str | None,
        configured_paths: Sequence[str] | None = None,
    ) -> str | None:
        """Return the best installation directory, or None when none is found.

        Args:
            target_version: Version label the project targets, e.g. ``"22.0"``.
            configured_paths: Installation directories from configuration, in
                priority order.
        """

        if configured_paths:
            configured_match = find_best_match(target_version, configured_paths)
            if configured_match is not None:
                _LOGGER.debug("Matched configured installation %s", configured_match)
                return configured_match

        installations = self.scan_standard_locations()
        if not installations:
            return None
        if len(installations) == 1:
            return installations[0].path

        return find_best_match(target_version, [item.path for item in installations])

    def scan_standard_locations(self) -> list[InstallationCandidate]:
        """Collect versioned installations under the standard roots."""

        installations: list[InstallationCandidate] = []
        for root in self._standard_roots:
            if not os.path.isdir(root):
                continue
            try:
                entries = sorted(os.scandir(root), key=lambda entry: entry.name)
            except OSError as exc:
                _LOGGER.debug("Skipping unreadable installation root %s: %s", root, exc)
                continue
            for entry in entries:
                candidate = self._inspect(entry)
                if candidate is not None:
                    installations.append(candidate)
        return installations

    def is_valid_installation(self, path: str) -> bool:
        """Return whether ``path`` has the expected binary layout."""

        binary_dir = os.path.join(path, self._binary_subdir)
        if not os.path.isdir(binary_dir):
            return False
        if not self._expected_binaries:
            return True
        return any(os.path.isfile(os.path.join(binary_dir, name)) for name in self._expected_binaries)

    def _inspect(self, entry: os.DirEntry[str]) -> InstallationCandidate | None:
        try:
            if not entry.is_dir():
                return None
            version = parse_version(entry.name)
            if version is None or not self.is_valid_installation(entry.path):
                return None
        except OSError as exc:
            _LOGGER.debug("Skipping unreadable installation %s: %s", entry.path, exc)
            return None
        return InstallationCandidate(path=entry.path, version=version, raw_version_label=entry.name)
