"""URL checks guarding the fetch tool against SSRF targets."""

from __future__ import annotations

import ipaddress
import logging
from urllib.parse import urlsplit


logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset({"http", "https"})
BLOCKED_HOSTS = frozenset(
    {
        "localhost",
        "metadata.google.internal",
        "metadata",
    }
)
BLOCKED_SUFFIXES = (".internal", ".local", ".localhost")


class UnsafeUrlError(ValueError):
    """The URL points somewhere the fetch tool must not go."""


def _blocked_address(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    )


def validate_url(url: str) -> str:
    """Return ``url`` if it is safe to fetch, otherwise raise ``UnsafeUrlError``."""

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError as exc:
        raise UnsafeUrlError("Invalid URL format") from exc

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise UnsafeUrlError(
            f"Protocol not allowed: {scheme or 'none'}. Only http/https are supported."
        )
    if not hostname:
        raise UnsafeUrlError("URL has no host")

    hostname = hostname.lower().rstrip(".")
    if (
        hostname in BLOCKED_HOSTS
        or hostname.endswith(BLOCKED_SUFFIXES)
        or _blocked_address(hostname)
    ):
        logger.warning("Blocked fetch of %s (host %s)", url, hostname)
        raise UnsafeUrlError(f"Access to {hostname} is blocked")
    return url


__all__ = ["UnsafeUrlError", "validate_url"]
