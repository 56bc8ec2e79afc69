"""Allocation of guest IP addresses inside a subnet."""

from __future__ import annotations

import ipaddress
from ipaddress import IPv4Address


class Addresses:
    """Hands out host addresses of an IPv4 network and takes them back.

    Released addresses are reused first, most recently released first.
    The first host address of the network is reserved for the gateway.
    """

    def __init__(self, addr: IPv4Address | str, prefix: int) -> None:
        self._network = ipaddress.IPv4Network(f"{addr}/{prefix}", strict=False)
        self._available: list[IPv4Address] = []
        self._last_assigned = 1
        self._used: set[IPv4Address] = set()

    def _nth(self, index: int) -> IPv4Address | None:
        if index >= self._network.num_addresses:
            return None
        return self._network.network_address + index

    def get(self) -> IPv4Address | None:
        """Return the next free address, or None when the network is exhausted."""
        if self._available:
            ip = self._available.pop()
            self._used.add(ip)
            return ip

        size = self._network.num_addresses
        index = self._last_assigned + 1
        while (ip := self._nth(index)) in self._used:
            index += 1
            if index >= size - 1:
                self._last_assigned = 1
                return None
        if ip is None:
            return None
        self._last_assigned = index
        self._used.add(ip)
        return ip

    def release(self, ip: IPv4Address | str) -> None:
        """Return an address to the pool."""
        address = IPv4Address(ip)
        self._available.append(address)
        self._used.discard(address)

    @property
    def gateway(self) -> IPv4Address:
        """The network address, used as the guests' gateway."""
        return self._network.network_address

    @property
    def netmask(self) -> IPv4Address:
        return self._network.netmask