"""Toolchain installation discovery."""

from toolchain_dispatch.installations.resolver import (
    InstallationCandidate,
    InstallationResolver,
    find_best_match,
    parse_version,
    select_candidate,
)

__all__ = [
    "InstallationCandidate",
    "InstallationResolver",
    "find_best_match",
    "parse_version",
    "select_candidate",
]
