"""Subdomain policy.

Tunnels are published as ``<subdomain>.<domain>``. A subdomain must be a
valid DNS label and must not be one of the names reserved for the service's
own infrastructure.
"""

from __future__ import annotations

import re

from nport_server.core.exceptions import InvalidSubdomainError, SubdomainProtectedError

PROTECTED_SUBDOMAINS: frozenset[str] = frozenset(
    {
        "admin",
        "api",
        "app",
        "assets",
        "auth",
        "blog",
        "cdn",
        "console",
        "dashboard",
        "dev",
        "dns",
        "docs",
        "ftp",
        "help",
        "imap",
        "login",
        "mail",
        "mx",
        "nport",
        "ns1",
        "ns2",
        "pop",
        "root",
        "server",
        "smtp",
        "staging",
        "static",
        "status",
        "support",
        "webmail",
        "www",
    }
)

MAX_LABEL_LENGTH = 63

_LABEL_CHARS = re.compile(r"^[a-z0-9-]+$")


def normalize_subdomain(subdomain: str) -> str:
    """Lowercase and strip a requested subdomain."""
    return subdomain.strip().lower()


def is_protected_subdomain(subdomain: str) -> bool:
    """Check whether a subdomain is reserved."""
    return normalize_subdomain(subdomain) in PROTECTED_SUBDOMAINS


def validate_subdomain(subdomain: str) -> None:
    """Validate that a normalized subdomain is a usable DNS label.

    Raises:
        InvalidSubdomainError: If the label is empty, too long, has characters
            outside [a-z0-9-] or starts/ends with a hyphen.
    """
    if not subdomain:
        raise InvalidSubdomainError(subdomain, "must not be empty")
    if len(subdomain) > MAX_LABEL_LENGTH:
        raise InvalidSubdomainError(
            subdomain, f"must be at most {MAX_LABEL_LENGTH} characters"
        )
    if not _LABEL_CHARS.match(subdomain):
        raise InvalidSubdomainError(
            subdomain, "only lowercase letters, digits and hyphens are allowed"
        )
    if subdomain.startswith("-") or subdomain.endswith("-"):
        raise InvalidSubdomainError(subdomain, "must not start or end with a hyphen")


def check_subdomain(subdomain: str) -> str:
    """Apply the full subdomain policy.

    Args:
        subdomain: Subdomain as requested by the client.

    Returns:
        The normalized subdomain.

    Raises:
        InvalidSubdomainError: If the subdomain is not a valid DNS label.
        SubdomainProtectedError: If the subdomain is reserved.
    """
    name = normalize_subdomain(subdomain)
    validate_subdomain(name)
    if name in PROTECTED_SUBDOMAINS:
        raise SubdomainProtectedError(name)
    return name
