"""
Protocol client interface for the Device Discovery Module.

This module defines the abstract base class device query clients must
implement. The device prober only talks to this interface, which keeps the
fallback algorithm independent of the protocol library and lets tests
substitute an in-memory client.
"""

from abc import ABC, abstractmethod
from typing import Optional


class ProtocolClientError(Exception):
    """Raised by protocol clients when a session cannot be opened or used."""
    pass


class ProtocolClient(ABC):
    """
    Abstract base class for device query sessions.

    A client instance holds at most one session. Sessions are opened for a
    host under a credential, queried by key and closed again; close() must be
    safe to call on a client that never opened or already closed.
    """

    @abstractmethod
    def open(self, host: str, credential: str) -> None:
        """
        Open a session to a host.

        Args:
            host: Address of the device
            credential: Secret the session authenticates with

        Raises:
            ProtocolClientError: If the session cannot be established
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Query one value.

        Args:
            key: Query key (an OID for SNMP)

        Returns:
            The value as a string, or None when the device has no value for
            the key or did not answer in time
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the session and any sockets it holds."""
        pass

    def __enter__(self) -> "ProtocolClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
