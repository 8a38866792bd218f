"""
SNMP protocol client for the Device Discovery Module.

This module implements the ProtocolClient interface on top of the pysnmp
library. Each client owns a private asyncio event loop so that the async
pysnmp 7.x API can be driven from the synchronous worker threads of the
job scheduler without sharing loops between threads.
"""

import asyncio
from typing import Optional

from pysnmp.hlapi.v3arch.asyncio import (
    SnmpEngine,
    CommunityData,
    UdpTransportTarget,
    ContextData,
    ObjectType,
    ObjectIdentity,
    get_cmd,
)
from pysnmp.error import PySnmpError

from .protocol_client import ProtocolClient, ProtocolClientError
from ..utils.logger import Logger, get_logger

# Values pysnmp renders for varbinds that carry no data
_EMPTY_VALUE_PREFIXES = ("No Such", "No more variables")


class SNMPClient(ProtocolClient):
    """
    SNMPv1/v2c client performing single-OID GET requests.

    Attributes:
        port: UDP port of the agent
        version: SNMP version, 1 or 2 (v2c)
        timeout: Per-request timeout in seconds
        retries: Retransmissions per request
    """

    def __init__(
        self,
        port: int = 161,
        version: int = 2,
        timeout: float = 2.0,
        retries: int = 1,
        logger: Optional[Logger] = None,
    ):
        if version not in (1, 2):
            raise ValueError(f"Unsupported SNMP version: {version}")

        self.port = port
        self.version = version
        self.timeout = timeout
        self.retries = retries
        self.logger = logger or get_logger(__name__)

        self._host: Optional[str] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._engine: Optional[SnmpEngine] = None
        self._auth_data: Optional[CommunityData] = None
        self._transport: Optional[UdpTransportTarget] = None

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    def open(self, host: str, credential: str) -> None:
        """
        Prepare a session for host using credential as the community.

        SNMP over UDP is connectionless, so a successful open only means the
        transport was created; the caller verifies the session with a query.

        Raises:
            ProtocolClientError: If the transport cannot be created
        """
        self.close()

        self._host = host
        self._loop = asyncio.new_event_loop()
        try:
            self._engine = SnmpEngine()
            # mpModel 0 is SNMPv1, 1 is SNMPv2c
            self._auth_data = CommunityData(credential, mpModel=self.version - 1)
            self._transport = self._loop.run_until_complete(
                UdpTransportTarget.create(
                    (host, self.port), timeout=self.timeout, retries=self.retries
                )
            )
        except (PySnmpError, OSError) as e:
            self.close()
            raise ProtocolClientError(f"Cannot open SNMP session to {host}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        """
        GET a single OID.

        Returns:
            The rendered value, or None on timeouts, authentication failures,
            error status or noSuchObject/noSuchInstance/endOfMibView
        """
        if not self.is_open:
            raise ProtocolClientError("SNMP session is not open")

        # pysnmp enforces timeout/retries itself; the outer bound guards
        # against a dispatcher that never returns.
        budget = self.timeout * (self.retries + 1) + 1.0
        try:
            error_indication, error_status, error_index, var_binds = (
                self._loop.run_until_complete(
                    asyncio.wait_for(
                        get_cmd(
                            self._engine,
                            self._auth_data,
                            self._transport,
                            ContextData(),
                            ObjectType(ObjectIdentity(key)),
                            lookupMib=False,
                        ),
                        timeout=budget,
                    )
                )
            )
        except asyncio.TimeoutError:
            self.logger.debug(f"SNMP GET {key} on {self._host} timed out after {budget:.1f}s")
            return None
        except PySnmpError as e:
            self.logger.debug(f"PySnmp error querying {key} on {self._host}: {e}")
            return None

        if error_indication:
            self.logger.debug(f"SNMP error indication from {self._host}: {error_indication}")
            return None

        if error_status:
            problematic = var_binds[int(error_index) - 1][0] if error_index else "?"
            self.logger.debug(
                f"SNMP error status from {self._host}: {error_status.prettyPrint()} at {problematic}"
            )
            return None

        for _, value in var_binds:
            value_str = value.prettyPrint()
            if value_str.startswith(_EMPTY_VALUE_PREFIXES):
                return None
            return value_str

        return None

    def close(self) -> None:
        """
        Close the dispatcher and the private event loop.

        The shutdown runs inside the loop so that the transport's
        connection_lost callbacks and the dispatcher's timer task complete
        before the loop is closed; otherwise each session leaks its socket.
        """
        loop, engine = self._loop, self._engine
        self._loop = None
        self._engine = None
        self._auth_data = None
        self._transport = None

        if loop is None:
            return
        try:
            loop.run_until_complete(self._shutdown(engine))
        finally:
            loop.close()

    @staticmethod
    async def _shutdown(engine: Optional[SnmpEngine]) -> None:
        if engine is not None:
            engine.close_dispatcher()

        current = asyncio.current_task()
        leftovers = [task for task in asyncio.all_tasks() if task is not current]
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)

        # Let the callbacks scheduled by transport.close() run
        await asyncio.sleep(0)
