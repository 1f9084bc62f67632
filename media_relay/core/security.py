import asyncio
import ipaddress
import socket
from enum import Enum, auto
from urllib.parse import urlparse

from media_relay.config.settings import Settings
from media_relay.core.errors import BlockedUrl


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    BLOCKED = auto()
    INVALID = auto()


class SecurityValidator:
    """
    Validate URL security without throwing exceptions.
    Returns result enum for separation of concerns.
    """

    @staticmethod
    async def validate_url(url: str, settings: Settings) -> UrlValidationResult:
        """
        Validate URL against SSRF attacks.
        Resolves the host off the event loop and checks every address.
        """
        if not settings.security.enable_ssrf_protection:
            return UrlValidationResult.OK

        try:
            hostname = urlparse(url).hostname
        except ValueError:
            return UrlValidationResult.INVALID

        if not hostname:
            return UrlValidationResult.INVALID

        try:
            addr_info = await asyncio.to_thread(socket.getaddrinfo, hostname, None)
        except (socket.gaierror, UnicodeError):
            # Unresolvable here; the extractor reports its own error
            return UrlValidationResult.OK

        for info in addr_info:
            try:
                ip = ipaddress.ip_address(info[4][0].split("%", 1)[0])
            except ValueError:
                continue

            if ip.is_loopback:
                if not settings.security.allow_localhost:
                    return UrlValidationResult.BLOCKED
                continue

            if not settings.security.allow_private_ips and ip.is_private:
                return UrlValidationResult.BLOCKED

            if ip.is_link_local or ip.is_multicast:
                return UrlValidationResult.BLOCKED

        return UrlValidationResult.OK


async def ensure_reachable(url: str, settings: Settings, what: str = "URL") -> None:
    """Raise unless the SSRF guard lets url through"""
    result = await SecurityValidator.validate_url(url, settings)
    if result == UrlValidationResult.BLOCKED:
        raise BlockedUrl(f"{what} points to a private or local address")
    if result == UrlValidationResult.INVALID:
        raise BlockedUrl(f"{what} could not be validated")
