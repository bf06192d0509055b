"""GATT session wrapper around a single bleak client connection."""

import asyncio
from typing import Any, Callable, Optional

from bleak import BleakClient as BleakRootClient
from bleak.exc import BleakError

from envsense.interfaces.ble.constants import (
    BLEConfig,
    ERROR_DISCOVERY_INCOMPLETE,
    ERROR_NOT_CONNECTED,
    ERROR_TIMEOUT,
    logger,
)
from envsense.interfaces.ble.errors import BLEError, BLEErrorHandler

__all__ = ["GattSession", "ValueCallback"]

ValueCallback = Callable[[bytes], None]


class GattSession:
    """
    One connection attempt to the peripheral, backed by a bleak client.

    Every coroutine must run on the reactor loop. The disconnect callback is
    handed to bleak at construction so it is registered before the connection
    is even attempted.
    """

    @staticmethod
    async def _with_timeout(awaitable, timeout: Optional[float], label: str):
        """
        Await an awaitable, applying an optional timeout.

        Parameters:
            awaitable: An awaitable to execute.
            timeout (Optional[float]): Maximum seconds to wait; if None, wait indefinitely.
            label (str): Short description used in the timeout error message.

        Returns:
            The result returned by the awaitable.

        Raises:
            BLEError: If the awaitable does not complete before the timeout elapses.
        """
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise BLEError(ERROR_TIMEOUT.format(label, timeout)) from exc

    def __init__(
        self,
        address: str,
        *,
        disconnected_callback: Callable[["GattSession"], None],
        address_type: str = "random",
        security: str = "low",
        **kwargs,
    ) -> None:
        """
        Create the bleak client for `address` without connecting.

        Parameters:
            address (str): Peripheral address.
            disconnected_callback: Called with this session when the link drops.
            address_type (str): "public" or "random"; forwarded to backends that use it.
            security (str): "low" skips pairing; "medium"/"high" pair after connecting.
            **kwargs: Forwarded to the bleak client constructor.
        """
        self.address = address
        self.security = security
        self.error_handler = BLEErrorHandler()
        self._on_disconnect = disconnected_callback
        self.bleak_client: Optional[BleakRootClient] = BleakRootClient(
            address,
            disconnected_callback=self._handle_bleak_disconnect,
            winrt={"address_type": address_type},
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"GattSession(address={self.address!r})"

    def _handle_bleak_disconnect(self, _client: BleakRootClient) -> None:
        self._on_disconnect(self)

    def _require_client(self, action: str) -> BleakRootClient:
        if self.bleak_client is None:
            raise BLEError(ERROR_NOT_CONNECTED.format(action))
        return self.bleak_client

    @property
    def is_connected(self) -> bool:
        """Report whether the underlying bleak client holds a live link."""
        bleak_client = self.bleak_client
        if bleak_client is None:
            return False

        def _check_connection():
            connected = getattr(bleak_client, "is_connected", False)
            if callable(connected):
                connected = connected()
            return bool(connected)

        return self.error_handler.safe_execute(
            _check_connection,
            default_return=False,
            error_msg="Unable to read bleak connection state",
        )

    async def connect(self) -> None:
        """Open the transport, pairing first when a raised security level is configured."""
        client = self._require_client("connect")
        await self._with_timeout(
            client.connect(timeout=BLEConfig.CONNECTION_TIMEOUT),
            BLEConfig.CONNECTION_TIMEOUT,
            "connect",
        )
        if self.security != "low":
            logger.debug("Pairing with %s (security=%s)", self.address, self.security)
            await self._with_timeout(
                client.pair(), BLEConfig.CONNECTION_TIMEOUT, "pair"
            )

    async def discover(self) -> Any:
        """
        Return the discovered service collection.

        Raises:
            BLEError: When bleak has not finished service discovery.
        """
        client = self._require_client("discover")
        try:
            services = client.services
        except BleakError as exc:
            raise BLEError(ERROR_DISCOVERY_INCOMPLETE) from exc
        if services is None:
            raise BLEError(ERROR_DISCOVERY_INCOMPLETE)
        return services

    def get_characteristic(self, handle: int) -> Optional[Any]:
        """Look up a characteristic object by handle in the discovered tree."""
        client = self.bleak_client
        if client is None:
            return None
        return self.error_handler.safe_execute(
            lambda: client.services.get_characteristic(handle),
            error_msg="Characteristic lookup failed",
            log_error=False,
        )

    async def read_value(self, handle: int) -> bytes:
        client = self._require_client("read")
        data = await self._with_timeout(
            client.read_gatt_char(handle), BLEConfig.GATT_IO_TIMEOUT, "read"
        )
        return bytes(data)

    async def subscribe_notify(self, handle: int, on_value: ValueCallback) -> None:
        """Register for value-change notifications on `handle`."""
        client = self._require_client("start notify")

        def _forward(_sender: Any, data: bytearray) -> None:
            on_value(bytes(data))

        await self._with_timeout(
            client.start_notify(handle, _forward),
            BLEConfig.NOTIFICATION_START_TIMEOUT,
            "start notify",
        )

    async def disconnect(self) -> None:
        client = self._require_client("disconnect")
        await self._with_timeout(
            client.disconnect(), BLEConfig.DISCONNECT_TIMEOUT, "disconnect"
        )

    def release(self) -> None:
        """Forget the bleak client; later calls raise BLEError."""
        self.bleak_client = None
