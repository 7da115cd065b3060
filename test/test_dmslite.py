"""Tests for the dynamic message sign protocol."""

import logging
import time
import xml.etree.ElementTree as ET

import pytest

from common.connection import CommStatus, Device
from common.encoding import FramingError, ParseResult, ProtocolLogicError, TransportError
from common.protocol import MAX_RETRIES, TIMEOUT_DEFAULT_MS, TIMEOUT_MODEM_MS
from operation.base import Priority
from poller import Poller
from protocols.dmslite import (
    ConfigRequest,
    DmsLiteCodec,
    OpQueryConfig,
    OpSendMessage,
    SendMessageRequest,
    SignConfig,
)

CONFIG_BODY = (
    "<Model>VMS-3</Model><Make>Acme</Make><SignAccess>Dial-Modem-1</SignAccess>"
    "<SignWidthPixels>96</SignWidthPixels><SignHeightPixels>24</SignHeightPixels>"
)


def config_response(msg_id: int, body: str = CONFIG_BODY, valid: str = "true") -> bytes:
    return (
        f"<DmsLite><GetDmsConfigRespMsg><Id>{msg_id}</Id><IsValid>{valid}</IsValid>"
        f"{body}</GetDmsConfigRespMsg></DmsLite>"
    ).encode("ascii")


def sign_responder(data: bytes) -> bytes:
    """Answer any request the way a healthy sign does."""
    msg = ET.fromstring(data)[0]
    msg_id = msg.findtext("Id")
    if msg.tag == "GetDmsConfigReqMsg":
        return config_response(int(msg_id))
    resp = msg.tag.replace("ReqMsg", "RespMsg")
    return f"<DmsLite><{resp}><Id>{msg_id}</Id><IsValid>true</IsValid></{resp}></DmsLite>".encode(
        "ascii"
    )


@pytest.mark.unit
class TestEncoding:
    """Tests for request documents."""

    def test_config_request(self) -> None:
        frame = DmsLiteCodec().encode(ConfigRequest(timeout_ms=30000, msg_id=7), 3)
        assert frame == (
            b"<DmsLite><GetDmsConfigReqMsg><Id>7</Id><Address>3</Address>"
            b"</GetDmsConfigReqMsg></DmsLite>"
        )

    def test_send_message_request(self) -> None:
        req = SendMessageRequest(timeout_ms=30000, msg_id=8, text="ICE AHEAD", owner="ops")
        root = ET.fromstring(DmsLiteCodec().encode(req, 1))
        msg = root.find("SetSnglPgReqMsg")
        assert msg is not None
        assert [child.tag for child in msg] == ["Id", "Address", "MsgText", "Owner"]
        assert msg.findtext("MsgText") == "ICE AHEAD"

    def test_text_escaped(self) -> None:
        req = SendMessageRequest(timeout_ms=30000, text="A<B & C")
        frame = DmsLiteCodec().encode(req, 1)
        assert b"A&lt;B &amp; C" in frame

    def test_ids_unique(self) -> None:
        a = ConfigRequest(timeout_ms=1)
        b = ConfigRequest(timeout_ms=1)
        assert a.msg_id != b.msg_id


@pytest.mark.unit
class TestDecoding:
    """Tests for response validation."""

    def decode(self, frame: bytes, msg_id: int = 7) -> ParseResult:
        return DmsLiteCodec().decode(ConfigRequest(timeout_ms=30000, msg_id=msg_id), frame)

    def test_config(self) -> None:
        result = self.decode(config_response(7))
        assert result.ok
        assert result.value == SignConfig(
            model="VMS-3",
            make="Acme",
            access="Dial-Modem-1",
            width_pixels=96,
            height_pixels=24,
        )

    def test_leading_noise_skipped(self) -> None:
        assert self.decode(b"\x00\r\n" + config_response(7)).ok

    def test_stale_id(self) -> None:
        result = self.decode(config_response(6))
        assert isinstance(result.error, FramingError)
        assert result.error.scanned == config_response(6)

    def test_rejected(self) -> None:
        body = "<ErrMsg>Sign in local control</ErrMsg>"
        result = self.decode(config_response(7, body=body, valid="false"))
        assert isinstance(result.error, ProtocolLogicError)
        assert "Sign in local control" in str(result.error)

    def test_wrong_response_type(self) -> None:
        frame = b"<DmsLite><SetSnglPgRespMsg><Id>7</Id><IsValid>true</IsValid></SetSnglPgRespMsg></DmsLite>"
        assert isinstance(self.decode(frame).error, ProtocolLogicError)

    def test_malformed(self) -> None:
        assert isinstance(self.decode(b"<DmsLite><Get></DmsLite>").error, FramingError)

    def test_no_root(self) -> None:
        assert isinstance(self.decode(b"garbage</DmsLite>").error, FramingError)

    def test_missing_field(self) -> None:
        body = CONFIG_BODY.replace("<Model>VMS-3</Model>", "")
        assert isinstance(self.decode(config_response(7, body=body)).error, FramingError)

    def test_bad_size(self) -> None:
        body = CONFIG_BODY.replace(">96<", ">wide<")
        assert isinstance(self.decode(config_response(7, body=body)).error, FramingError)

    def test_bad_valid_flag(self) -> None:
        assert isinstance(self.decode(config_response(7, valid="maybe")).error, FramingError)

    def test_read_frame(self, mock_port) -> None:
        mock_port.inject(config_response(7))
        frame = DmsLiteCodec().read_frame(mock_port, time.monotonic() + 1)
        assert frame == config_response(7)


@pytest.mark.unit
class TestOperations:
    """Tests for sign operations driven by hand."""

    def config(self, access: str = "Dial-Modem-1") -> ParseResult:
        return ParseResult.success(SignConfig("VMS-3", "Acme", access, 96, 24))

    def test_query_config_updates_access(self, listener) -> None:
        device = Device("S1", "dmslite")
        op = OpQueryConfig(device)
        op.listener = listener
        msg = op.next_message()
        assert msg.request.timeout_ms == TIMEOUT_DEFAULT_MS
        assert msg.timeout_ms == TIMEOUT_DEFAULT_MS

        op.on_response(self.config())

        assert op.success
        assert device.access == "Dial-Modem-1"
        assert device.reset
        assert device.status is CommStatus.OK
        assert listener.calls[0][2]["width_pixels"] == 96

        follow_up = OpQueryConfig(device)
        assert follow_up.next_message().request.timeout_ms == TIMEOUT_MODEM_MS

    def test_failure_clears_reset(self) -> None:
        device = Device("S1", "dmslite", access="Wizard")
        device.reset = True
        op = OpQueryConfig(device)
        op.next_message()
        op.on_response(ParseResult.failure(ProtocolLogicError("Sign rejected")))
        assert op.state.value == "failed"
        assert not device.reset
        assert device.access == "Wizard"

    def test_send_message(self) -> None:
        device = Device("S1", "dmslite")
        op = OpSendMessage(device, "ICE AHEAD", owner="ops")
        assert op.priority is Priority.HIGH
        msg = op.next_message()
        assert msg.request.text == "ICE AHEAD"
        assert msg.request.owner == "ops"
        op.on_response(ParseResult.success(True))
        assert op.result().derived == {"text": "ICE AHEAD", "owner": "ops"}

    def test_framing_error_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        op = OpQueryConfig(Device("S1", "dmslite"))
        op.next_message()
        with caplog.at_level(logging.WARNING):
            op.on_response(ParseResult.failure(FramingError("Malformed XML", scanned=b"<Dms")))
        assert "b'<Dms'" in caplog.text
        assert not op.done


@pytest.mark.unit
class TestOverLink:
    """Tests for sign operations through a comm link."""

    def test_query_then_send(self, link_params, scripted_port, listener) -> None:
        port = scripted_port(sign_responder)
        device = Device("S1", "dmslite", drop=4)
        with Poller(listener=listener) as poller:
            poller.add_link(link_params("signs"), port_factory=lambda params: port)
            poller.register_device(device, "signs")

            config = poller.poll(device).wait(2.0)
            sent = poller.submit(OpSendMessage(device, "ICE AHEAD")).wait(2.0)

        assert config.success
        assert config.derived["access"] == "Dial-Modem-1"
        assert sent.success
        assert device.access == "Dial-Modem-1"
        assert device.reset
        assert [ET.fromstring(w)[0].findtext("Address") for w in port.writes] == ["4", "4"]
        assert [c[1] for c in listener.calls] == [True, True]

    def test_stale_reply_ignored(self, link_params, scripted_port) -> None:
        calls = []

        def lagging(data: bytes) -> bytes:
            calls.append(data)
            msg_id = int(ET.fromstring(data)[0].findtext("Id"))
            # First answer carries the previous request's Id
            return config_response(msg_id - 1 if len(calls) == 1 else msg_id)

        port = scripted_port(lagging)
        device = Device("S1", "dmslite")
        with Poller() as poller:
            poller.add_link(link_params("signs"), port_factory=lambda params: port)
            poller.register_device(device, "signs")
            result = poller.poll(device).wait(2.0)

        assert result.success
        assert result.attempts == 2


@pytest.mark.unit
class TestRetriedRequests:
    """Tests for re-issuing sign requests after a failed exchange."""

    def test_retry_uses_new_id(self) -> None:
        op = OpQueryConfig(Device("S1", "dmslite"))
        first = op.next_message().request
        op.on_response(ParseResult.failure(FramingError("Malformed XML")))
        second = op.next_message().request
        assert second.msg_id != first.msg_id
        assert second.timeout_ms == first.timeout_ms

    def test_send_message_retry_keeps_text(self) -> None:
        op = OpSendMessage(Device("S1", "dmslite"), "ICE AHEAD", owner="ops")
        first = op.next_message().request
        op.on_transport_error(TransportError("Timeout waiting for response"))
        second = op.next_message().request
        assert second.msg_id != first.msg_id
        assert (second.text, second.owner) == ("ICE AHEAD", "ops")

    def test_reply_to_earlier_attempt_rejected(self, link_params, scripted_port) -> None:
        ids = []

        def late(data: bytes) -> bytes:
            ids.append(int(ET.fromstring(data)[0].findtext("Id")))
            # Always answer with the Id of the first request
            return config_response(ids[0])

        port = scripted_port(late)
        device = Device("S1", "dmslite")
        with Poller() as poller:
            poller.add_link(link_params("signs"), port_factory=lambda params: port)
            poller.register_device(device, "signs")
            result = poller.poll(device).wait(2.0)

        assert len(ids) == len(set(ids)) == MAX_RETRIES + 1
        assert result.state.value == "failed"
        assert isinstance(result.error, FramingError)
