"""Request utility functions for handling common request operations."""

import ipaddress
import logging
from collections.abc import Collection

from fastapi import Request

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request, trusted_proxies: Collection[str] = ()) -> str:
    """Get the client IP address used to key throttling and security logs.

    X-Forwarded-For and X-Real-IP can be spoofed by clients, so they are only
    honoured when the direct connection comes from one of ``trusted_proxies``.
    Otherwise the direct peer address is used.

    Args:
        request: The incoming request
        trusted_proxies: Proxy addresses allowed to set forwarding headers

    Returns:
        Client IP address, or "unknown" when the transport exposes none
    """
    direct_ip = request.client.host if request.client else None

    if direct_ip and direct_ip in trusted_proxies:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()
            if _is_valid_ip(client_ip):
                return client_ip
            logger.warning(f"Invalid IP in X-Forwarded-For header: {client_ip}")

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            real_ip = real_ip.strip()
            if _is_valid_ip(real_ip):
                return real_ip
            logger.warning(f"Invalid IP in X-Real-IP header: {real_ip}")
    elif request.headers.get("X-Forwarded-For") or request.headers.get("X-Real-IP"):
        logger.debug(f"Ignoring forwarding headers from untrusted source: {direct_ip}")

    return direct_ip or UNKNOWN_CLIENT
