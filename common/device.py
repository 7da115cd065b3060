"""Port setup for comm links.

Contains:
- log_device_info: Log information about a serial device
- open_serial: Open and configure a local serial port
- open_port: Open a local port or a pyserial URL (socket://, rfc2217://)
"""

import logging
import os

import serial
import serial.tools.list_ports

from common.connection import LinkParams

logger = logging.getLogger(__name__)

URL_SCHEMES = ("socket://", "rfc2217://", "loop://")


def log_device_info(device: str) -> None:
    """Log information about a serial device."""
    real_path = os.path.realpath(device)
    if real_path.startswith("/dev/pts/"):
        logger.info(f"Device: {device} -> {real_path} (pty)")
        return

    ports = [p for p in serial.tools.list_ports.comports() if p.device == device]
    if len(ports) == 0:
        logger.info(f"Device: {device} (not in port list)")
        return
    if len(ports) > 1:
        raise RuntimeError(f"Multiple ports found for device {device}")

    info = ports[0]
    logger.info(f"Device: {info.device}")
    logger.info(f"Description: {info.description}")
    if info.vid is not None:
        logger.info(f"VID:PID: {info.vid:04x}:{info.pid:04x}")


def open_serial(
    device: str,
    baudrate: int,
    rtscts: bool = False,
) -> serial.Serial:
    """Open and configure a serial port."""
    log_device_info(device)
    ser = serial.Serial(
        port=device,
        baudrate=baudrate,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=rtscts,
        timeout=0.1,
        write_timeout=1.0,
    )
    ser.reset_output_buffer()
    logger.debug(f"Serial port: baudrate={ser.baudrate}, rtscts={ser.rtscts}")
    return ser


def open_port(params: LinkParams) -> serial.SerialBase:
    """Open the transport for a link.

    Raises serial.SerialException if the port cannot be opened.
    """
    if params.uri.startswith(URL_SCHEMES):
        port = serial.serial_for_url(params.uri, timeout=0.1, write_timeout=1.0)
        logger.info(f"Link {params.name}: opened {params.uri}")
        return port
    return open_serial(params.uri, params.baudrate, params.rtscts)
