"""Operations performed on a dynamic message sign."""

from dataclasses import replace
from typing import Any

from common.connection import Device
from common.encoding import FramingError
from operation.base import Operation, Priority
from operation.policy import RetryPolicy
from protocols.dmslite.codec import DmsLiteCodec
from protocols.dmslite.messages import (
    ConfigRequest,
    SendMessageRequest,
    SignConfig,
    SignRequest,
    next_msg_id,
)

CODEC = DmsLiteCodec()


class OpDms(Operation):
    """Base class for sign operations.

    Every request carries the timeout computed from the sign access
    descriptor, and cleanup sets the sign reset indicator to the outcome.
    """

    def __init__(
        self,
        device: Device,
        priority: Priority = Priority.ROUTINE,
        policy: RetryPolicy | None = None,
    ) -> None:
        super().__init__(device, CODEC, priority, policy)

    def handle_exception(self, error: Exception) -> None:
        if isinstance(error, FramingError):
            self.logger.warning(f"{self.device.name} ({self}), {error.scanned!r}")

    def retry_request(self, step: int, request: SignRequest) -> SignRequest:
        """Same request under a new Id, so a late reply to the failed attempt never matches."""
        return replace(request, msg_id=next_msg_id())

    def msg_attributes(self) -> dict[str, Any]:
        """Attributes every request of this operation is built with."""
        assert self.timeout_ms is not None
        return {"timeout_ms": self.timeout_ms}

    def device_updates(self) -> dict[str, Any]:
        return {"reset": self.success}


class OpQueryConfig(OpDms):
    """Query the sign configuration.

    The access descriptor reported by the sign replaces the device's, which
    selects the timeout of later operations.
    """

    def __init__(self, device: Device, priority: Priority = Priority.ROUTINE) -> None:
        super().__init__(device, priority)
        self.config: SignConfig | None = None

    def build_requests(self) -> list[SignRequest]:
        return [ConfigRequest(**self.msg_attributes())]

    def handle_response(self, step: int, value: SignConfig) -> None:
        self.config = value

    def device_updates(self) -> dict[str, Any]:
        updates = super().device_updates()
        if self.success and self.config is not None:
            updates["access"] = self.config.access
        return updates

    def derived_fields(self) -> dict[str, Any]:
        if self.config is None:
            return {}
        return {
            "model": self.config.model,
            "make": self.config.make,
            "access": self.config.access,
            "width_pixels": self.config.width_pixels,
            "height_pixels": self.config.height_pixels,
        }


class OpSendMessage(OpDms):
    """Display a single page message on the sign."""

    def __init__(
        self,
        device: Device,
        text: str,
        owner: str = "",
        priority: Priority = Priority.HIGH,
    ) -> None:
        super().__init__(device, priority)
        self.text = text
        self.owner = owner

    def build_requests(self) -> list[SignRequest]:
        return [SendMessageRequest(text=self.text, owner=self.owner, **self.msg_attributes())]

    def handle_response(self, step: int, value: bool) -> None:
        self.logger.info(f"{self}: message accepted")

    def derived_fields(self) -> dict[str, Any]:
        return {"text": self.text, "owner": self.owner}


def poll(device: Device, priority: Priority = Priority.ROUTINE) -> OpQueryConfig:
    return OpQueryConfig(device, priority)
