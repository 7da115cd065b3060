"""Poller: the engine that owns every comm link.

Callers register links and devices, then submit operations:

    poller = Poller(listener=archiver)
    poller.add_link(LinkParams("north", "/dev/ttyUSB0"))
    poller.register_device(Device("D101", "ss105", drop=3), "north")
    handle = poller.submit(OpQuerySamples(device))
    result = handle.wait()

Each device is bound to one link and one protocol driver, chosen at
registration.
"""

import logging
import threading
from types import TracebackType

from common.connection import Device, LinkParams
from operation.base import CompletionListener, Operation, Priority
from operation.handle import OperationHandle
from poller.link import CommLink, PortFactory
from poller.queue import QueueClosedError, QueueFullError
from protocols import ProtocolDriver, get_driver


class Poller:
    """Engine entry point: links, device registration, submission."""

    def __init__(
        self,
        listener: CompletionListener | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.listener = listener
        self.logger = logger or logging.getLogger(__name__)
        self._links: dict[str, CommLink] = {}
        self._device_links: dict[Device, CommLink] = {}
        self._drivers: dict[Device, ProtocolDriver] = {}
        self._lock = threading.Lock()
        self._started = False

    def __enter__(self) -> "Poller":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    # -------------------------------------------------------------------------
    # Links
    # -------------------------------------------------------------------------

    def add_link(self, params: LinkParams, port_factory: PortFactory | None = None) -> CommLink:
        """Create a link. Its worker starts now if the poller is running."""
        with self._lock:
            if params.name in self._links:
                raise ValueError(f"Duplicate link {params.name!r}")
            kwargs = {"port_factory": port_factory} if port_factory else {}
            link = CommLink(params, logger=self.logger.getChild(params.name), **kwargs)
            self._links[params.name] = link
            started = self._started
        if started:
            link.start()
        return link

    def link(self, name: str) -> CommLink:
        with self._lock:
            try:
                return self._links[name]
            except KeyError:
                raise KeyError(f"Unknown link {name!r}") from None

    @property
    def links(self) -> list[CommLink]:
        with self._lock:
            return list(self._links.values())

    def remove_link(self, name: str) -> None:
        """Stop a link and detach its devices (their operations are cancelled)."""
        link = self.link(name)
        for device in link.devices:
            self.unregister_device(device)
        link.stop()
        with self._lock:
            del self._links[name]

    def start(self) -> None:
        with self._lock:
            self._started = True
            links = list(self._links.values())
        for link in links:
            link.start()
        self.logger.info(f"Poller started ({len(links)} links)")

    def stop(self, timeout: float | None = None) -> None:
        with self._lock:
            self._started = False
            links = list(self._links.values())
        for link in links:
            link.stop(timeout)
        self.logger.info("Poller stopped")

    # -------------------------------------------------------------------------
    # Devices
    # -------------------------------------------------------------------------

    def register_device(self, device: Device, link_name: str) -> None:
        """Bind device to a link and select its protocol driver.

        A device already on another link is moved; its pending operations on
        the old link are cancelled.

        Raises:
            KeyError: Unknown link or protocol.
        """
        driver = get_driver(device.protocol)
        link = self.link(link_name)
        with self._lock:
            old = self._device_links.get(device)
        if old is not None and old is not link:
            self.logger.info(f"Moving {device.name} from {old.name} to {link.name}")
            old.remove_device(device)
        link.add_device(device)
        with self._lock:
            self._device_links[device] = link
            self._drivers[device] = driver

    def unregister_device(self, device: Device) -> None:
        with self._lock:
            link = self._device_links.pop(device, None)
            self._drivers.pop(device, None)
        if link is not None:
            link.remove_device(device)

    def device_link(self, device: Device) -> CommLink:
        with self._lock:
            try:
                return self._device_links[device]
            except KeyError:
                raise KeyError(f"{device.name} is not registered") from None

    def driver(self, device: Device) -> ProtocolDriver:
        with self._lock:
            try:
                return self._drivers[device]
            except KeyError:
                raise KeyError(f"{device.name} is not registered") from None

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def submit(self, op: Operation) -> OperationHandle:
        """Queue op on its device's link and return a handle to it.

        Raises:
            KeyError: If the device is not registered.
            QueueFullError: If the link queue is full.
        """
        link = self.device_link(op.device)
        if op.listener is None:
            op.listener = self.listener
        link.submit(op)
        return OperationHandle(op, link)

    def cancel_device(self, device: Device) -> int:
        """Cancel every queued and in-flight operation for device."""
        return self.device_link(device).cancel_device(device)

    def poll(self, device: Device) -> OperationHandle:
        """Submit the driver's routine poll operation for device."""
        op = self.driver(device).poll(device, Priority.ROUTINE)
        return self.submit(op)

    def poll_all(self) -> list[OperationHandle]:
        """Submit one routine poll per registered device.

        Devices whose queue is full are skipped and logged.
        """
        with self._lock:
            devices = list(self._device_links)
        handles = []
        for device in devices:
            try:
                handles.append(self.poll(device))
            except (QueueFullError, QueueClosedError) as e:
                self.logger.warning(f"Poll of {device.name} not queued: {e}")
        return handles
