"""Utility modules for the commentgate API."""

from commentgate.utils.ip import get_client_ip, hash_ip


__all__ = ["get_client_ip", "hash_ip"]
