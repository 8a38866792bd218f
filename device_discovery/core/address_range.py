"""
Address range expansion for the Device Discovery Module.

Turns CIDR tokens into the host address space that gets scanned.
The network and broadcast addresses are excluded. Point-to-point /31
networks yield both of their addresses and a /32 yields its single address.
"""

import re
from typing import Iterable, Iterator, List

from .data_models import AddressRange, TargetSpec
from ..utils.error_handler import InvalidTargetFormat
from ..utils.network_utils import address_to_int, is_valid_ip, network_bounds

_CIDR_PATTERN = re.compile(r"^\s*(\d{1,3}(?:\.\d{1,3}){3})\s*(?:/\s*(\d{1,2}))?\s*$")


class AddressRangeExpander:
    """
    Expands CIDR tokens into ordered, deduplicated host address sequences.
    """

    def parse(self, cidr: str):
        """
        Split and validate an "ip/prefix" token.

        A bare address is accepted and treated as a /32.

        Returns:
            Tuple of (address, prefix)

        Raises:
            InvalidTargetFormat: If the token is not a valid IPv4 CIDR
        """
        if not isinstance(cidr, str):
            raise InvalidTargetFormat(f"Invalid target: {cidr!r}")

        match = _CIDR_PATTERN.match(cidr)
        if not match:
            raise InvalidTargetFormat(f"Invalid CIDR notation: '{cidr}'")

        address, prefix_text = match.groups()
        if not is_valid_ip(address):
            raise InvalidTargetFormat(f"Invalid IPv4 address in target: '{cidr}'")

        prefix = 32 if prefix_text is None else int(prefix_text)
        if not 0 <= prefix <= 32:
            raise InvalidTargetFormat(
                f"Prefix length must be between 0 and 32 in '{cidr}'"
            )
        return address, prefix

    def expand(self, cidr: str) -> AddressRange:
        """
        Compute the usable host range of a CIDR.

        Args:
            cidr: Network in "ip/prefix" form; host bits may be set

        Returns:
            AddressRange covering the usable hosts

        Raises:
            InvalidTargetFormat: If the CIDR is malformed
        """
        address, prefix = self.parse(cidr)
        network, broadcast = network_bounds(address, prefix)

        if prefix >= 31:
            return AddressRange(network, broadcast)
        return AddressRange(network + 1, broadcast - 1)

    def iter_targets(self, tokens: Iterable[str]) -> Iterator[str]:
        """
        Expand several tokens into one lazily evaluated address sequence.

        Addresses already covered by an earlier token are skipped, so the
        sequence holds every address once in first-seen order. Overlaps are
        removed range by range, so memory stays proportional to the number
        of tokens rather than the number of addresses.

        Raises:
            InvalidTargetFormat: If any token is malformed (checked up front)
        """
        pieces = self.unique_ranges(tokens)
        return (address for piece in pieces for address in piece)

    def unique_ranges(self, tokens: Iterable[str]) -> List[AddressRange]:
        """
        Expand tokens into disjoint ranges in first-seen order.

        Each range is reduced by the ranges of the earlier tokens; a token
        fully covered by earlier ones contributes nothing.
        """
        covered: List[AddressRange] = []
        pieces: List[AddressRange] = []

        for address_range in (self.expand(token) for token in tokens):
            if address_range.is_empty:
                continue
            segments = [(address_range.start, address_range.end)]
            for earlier in covered:
                segments = _subtract(segments, earlier)
                if not segments:
                    break
            pieces.extend(AddressRange(start, end) for start, end in segments)
            covered.append(address_range)

        return pieces

    def count(self, tokens: Iterable[str]) -> int:
        """Exact number of distinct addresses the tokens expand to."""
        return sum(len(piece) for piece in self.unique_ranges(tokens))

    def count_hosts(self, target: TargetSpec) -> int:
        """Number of hosts resolve() produces for a target."""
        if target.is_direct:
            return sum(1 for _ in self._iter_direct(target.hosts))
        return self.count(target.networks)

    def resolve(self, target: TargetSpec) -> Iterator[str]:
        """
        Produce the host sequence for a target.

        Direct-target mode returns the hosts as given (validated and
        deduplicated) without any range expansion.
        """
        if target.is_direct:
            return self._iter_direct(target.hosts)
        return self.iter_targets(target.networks)

    @staticmethod
    def _iter_direct(hosts: Iterable[str]) -> Iterator[str]:
        unique = []
        seen = set()
        for host in hosts:
            host = host.strip()
            if not is_valid_ip(host):
                raise InvalidTargetFormat(f"Invalid host address: '{host}'")
            key = address_to_int(host)
            if key not in seen:
                seen.add(key)
                unique.append(host)
        return iter(unique)


def _subtract(segments, earlier: AddressRange):
    """Remove earlier from a list of ascending (start, end) segments."""
    remaining = []
    for start, end in segments:
        if earlier.end < start or earlier.start > end:
            remaining.append((start, end))
            continue
        if start < earlier.start:
            remaining.append((start, earlier.start - 1))
        if end > earlier.end:
            remaining.append((earlier.end + 1, end))
    return remaining
