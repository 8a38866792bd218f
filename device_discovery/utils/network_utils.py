"""
Network utility functions for IPv4 address calculations.

This module provides helper functions for address validation, conversion
between dotted-quad and integer forms and bounded address arithmetic.
"""

import ipaddress
from typing import Tuple

MAX_ADDRESS = 0xFFFFFFFF


def is_valid_ip(ip_address: str) -> bool:
    """
    Check if a string represents a valid IPv4 address.

    Args:
        ip_address: String to validate as IPv4 address

    Returns:
        bool: True if valid IPv4 address, False otherwise
    """
    try:
        ipaddress.IPv4Address(ip_address)
        return True
    except ipaddress.AddressValueError:
        return False


def prefix_mask(prefix: int) -> int:
    """
    Return the 32-bit netmask for a prefix length.

    Raises:
        ValueError: If prefix is not in valid range (0-32)
    """
    if not 0 <= prefix <= 32:
        raise ValueError(f"Prefix must be between 0 and 32, got {prefix}")
    return (MAX_ADDRESS << (32 - prefix)) & MAX_ADDRESS


def address_to_int(address: str) -> int:
    """Convert a dotted-quad address to its 32-bit integer value."""
    return int(ipaddress.IPv4Address(address))


def int_to_address(value: int) -> str:
    """
    Convert a 32-bit integer to dotted-quad form.

    Raises:
        ValueError: If value is outside the IPv4 address space
    """
    if not 0 <= value <= MAX_ADDRESS:
        raise ValueError(f"{value} is outside the IPv4 address space")
    return str(ipaddress.IPv4Address(value))


def increment_address(address: str, step: int = 1) -> str:
    """
    Return the address `step` positions after `address`.

    Raises:
        ValueError: If the result would leave the address space
    """
    return int_to_address(address_to_int(address) + step)


def decrement_address(address: str, step: int = 1) -> str:
    """
    Return the address `step` positions before `address`.

    Raises:
        ValueError: If the result would leave the address space
    """
    return int_to_address(address_to_int(address) - step)


def network_bounds(ip_address: str, prefix: int) -> Tuple[int, int]:
    """
    Compute the network and broadcast addresses of ip/prefix as integers.

    Args:
        ip_address: Any address inside the network
        prefix: Prefix length (0-32)

    Returns:
        Tuple[int, int]: (network, broadcast)
    """
    mask = prefix_mask(prefix)
    network = address_to_int(ip_address) & mask
    broadcast = network | (~mask & MAX_ADDRESS)
    return network, broadcast


def sort_addresses(addresses) -> list:
    """Sort dotted-quad strings numerically."""
    return sorted(addresses, key=address_to_int)
