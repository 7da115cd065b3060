"""Sign protocol XML messages.

Every message is one element inside a <DmsLite> root:

  <DmsLite><SetSnglPgReqMsg><Id>7</Id><Address>3</Address>...</SetSnglPgReqMsg></DmsLite>

and the sign answers with the matching response element carrying the same
<Id>, an <IsValid> flag and an <ErrMsg> when IsValid is false.
"""

import itertools
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from common.encoding import FramingError, ProtocolLogicError

ROOT = "DmsLite"

_ids = itertools.count(1)


def next_msg_id() -> int:
    return next(_ids)


def _text(elem: ET.Element, tag: str) -> str:
    child = elem.find(tag)
    if child is None:
        raise FramingError(f"Missing <{tag}> in <{elem.tag}>")
    return (child.text or "").strip()


@dataclass(frozen=True)
class SignRequest(ABC):
    """A request to a sign.

    timeout_ms is set by the operation from the sign access descriptor and
    is used as the read deadline of the exchange.
    """

    timeout_ms: int
    msg_id: int = field(default_factory=next_msg_id)

    req_name: ClassVar[str]
    resp_name: ClassVar[str]

    def fields(self) -> dict[str, str]:
        """Request-specific child elements, in order."""
        return {}

    def to_element(self, drop: int) -> ET.Element:
        root = ET.Element(ROOT)
        msg = ET.SubElement(root, self.req_name)
        ET.SubElement(msg, "Id").text = str(self.msg_id)
        ET.SubElement(msg, "Address").text = str(drop)
        for tag, value in self.fields().items():
            ET.SubElement(msg, tag).text = value
        return root

    def parse(self, root: ET.Element) -> Any:
        """Check the response envelope, then parse its body.

        Raises:
            FramingError: Wrong root, missing fields or a stale Id.
            ProtocolLogicError: Unexpected response type or IsValid false.
        """
        if root.tag != ROOT:
            raise FramingError(f"Unexpected root <{root.tag}>")
        msg = root.find(self.resp_name)
        if msg is None:
            got = [child.tag for child in root]
            raise ProtocolLogicError(f"Expected <{self.resp_name}>, got {got}")
        msg_id = _text(msg, "Id")
        if msg_id != str(self.msg_id):
            raise FramingError(f"Response Id {msg_id} does not match request Id {self.msg_id}")
        valid = _text(msg, "IsValid").lower()
        if valid not in ("true", "false"):
            raise FramingError(f"Invalid IsValid value {valid!r}")
        if valid == "false":
            err = msg.findtext("ErrMsg", default="").strip()
            raise ProtocolLogicError(f"Sign rejected {self.req_name}: {err or 'no reason given'}")
        return self.parse_body(msg)

    @abstractmethod
    def parse_body(self, msg: ET.Element) -> Any:
        """Parse the fields of a valid response."""


@dataclass(frozen=True)
class SignConfig:
    """Sign configuration reported by the sign."""

    model: str
    make: str
    access: str
    width_pixels: int
    height_pixels: int


@dataclass(frozen=True)
class ConfigRequest(SignRequest):
    """Query the sign configuration."""

    req_name: ClassVar[str] = "GetDmsConfigReqMsg"
    resp_name: ClassVar[str] = "GetDmsConfigRespMsg"

    def parse_body(self, msg: ET.Element) -> SignConfig:
        try:
            width = int(_text(msg, "SignWidthPixels"))
            height = int(_text(msg, "SignHeightPixels"))
        except ValueError as e:
            raise FramingError(f"Invalid sign size: {e}") from None
        return SignConfig(
            model=_text(msg, "Model"),
            make=_text(msg, "Make"),
            access=_text(msg, "SignAccess"),
            width_pixels=width,
            height_pixels=height,
        )


@dataclass(frozen=True)
class SendMessageRequest(SignRequest):
    """Display a single page message."""

    text: str = ""
    owner: str = ""

    req_name: ClassVar[str] = "SetSnglPgReqMsg"
    resp_name: ClassVar[str] = "SetSnglPgRespMsg"

    def fields(self) -> dict[str, str]:
        return {"MsgText": self.text, "Owner": self.owner}

    def parse_body(self, msg: ET.Element) -> bool:
        return True
