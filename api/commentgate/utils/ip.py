"""Client IP extraction and one-way hashing.

Raw submitter IPs never reach storage or logs; only the salted SHA-256 digest
produced by ``hash_ip`` does.
"""

import hashlib

from fastapi import Request


UNKNOWN_IP = "unknown"


def get_client_ip(request: Request) -> str:
    """Get the client IP address, honouring reverse proxy headers.

    Order: X-Forwarded-For (first hop) > X-Real-IP > socket peer.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return UNKNOWN_IP


def hash_ip(ip: str, salt: str) -> str:
    """Salted SHA-256 hex digest of an IP address."""
    return hashlib.sha256(f"{salt}:{ip}".encode()).hexdigest()
