"""Device protocol drivers.

Each protocol supplies a codec and a routine poll operation; a device picks
its driver by name (Device.protocol) when it is registered:
- ss105: Detector binned sample protocol
- dmslite: Dynamic message sign protocol
"""

from protocols.driver import ProtocolDriver
from protocols import dmslite, ss105

DRIVERS: dict[str, ProtocolDriver] = {
    ss105.DRIVER.name: ss105.DRIVER,
    dmslite.DRIVER.name: dmslite.DRIVER,
}


def get_driver(name: str) -> ProtocolDriver:
    """Look up a driver by protocol name (case-insensitive).

    Raises KeyError for an unknown protocol.
    """
    try:
        return DRIVERS[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown protocol {name!r} (known: {', '.join(sorted(DRIVERS))})") from None


__all__ = ["DRIVERS", "ProtocolDriver", "get_driver"]
