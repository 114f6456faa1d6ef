"""Test EslSession against a fake GATT client."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest
from Crypto.Cipher import AES

from esldisplay.exceptions import (
    CharacteristicWriteError,
    DiscoveryTimeoutError,
    NoVendorServiceError,
    SecurityHandshakeError,
)
from esldisplay.models.enums import SessionState
from esldisplay.models.rgb_flash import RgbCommandParams
from esldisplay.models.settings import EslSettings
from esldisplay.protocol.security import SECURITY_KEY
from esldisplay.transport import EslSession, connection
from esldisplay.transport.connection import find_vendor_service, is_vendor_service

VENDOR_SERVICE = "0000fef0-1234-5678-9abc-def012345678"
SECURITY_UUID = "0000fef1-1234-5678-9abc-def012345678"
COMMAND_UUID = "0000fef2-1234-5678-9abc-def012345678"
STATUS_UUID = "0000fef3-1234-5678-9abc-def012345678"

CHALLENGE = bytes(range(16, 32))

BLE_DEVICE = SimpleNamespace(address="AA:BB:CC:DD:EE:FF", name="ESL_DDEEFF")

FAST = EslSettings(unlock_settle_delay=0, inter_chunk_delay=0, status_poll_timeout=0.05)


@dataclass
class FakeChar:
    uuid: str
    properties: list[str]


@dataclass
class FakeService:
    uuid: str
    characteristics: list[FakeChar] = field(default_factory=list)


class FakeClient:
    """Records writes and serves reads from a dict keyed by uuid."""

    def __init__(self, services, reads=None, fail_writes=False, fail_disconnect=False):
        self.services = services
        self.reads = reads or {}
        self.fail_writes = fail_writes
        self.fail_disconnect = fail_disconnect
        self.is_connected = True
        self.writes: list[tuple[str, bytes, bool]] = []
        self.read_uuids: list[str] = []

    async def read_gatt_char(self, char):
        self.read_uuids.append(char.uuid)
        value = self.reads.get(char.uuid)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise RuntimeError("read not permitted")
        return bytearray(value)

    async def write_gatt_char(self, char, data, response=False):
        if self.fail_writes:
            raise RuntimeError("GATT write failed")
        self.writes.append((char.uuid, bytes(data), response))

    async def disconnect(self):
        self.is_connected = False
        if self.fail_disconnect:
            raise RuntimeError("already gone")


def _standard_services():
    return [
        FakeService("00001800-0000-1000-8000-00805f9b34fb", [FakeChar("00002a00-0000-1000-8000-00805f9b34fb", ["read"])]),
        FakeService("00001801-0000-1000-8000-00805f9b34fb"),
        FakeService("0000180a-0000-1000-8000-00805f9b34fb"),
    ]


def _esl_service(command_props=("write-without-response", "write")):
    return FakeService(
        VENDOR_SERVICE,
        [
            FakeChar(SECURITY_UUID, ["read", "write"]),
            FakeChar(COMMAND_UUID, list(command_props)),
            FakeChar(STATUS_UUID, ["read", "notify"]),
        ],
    )


def _client(**kwargs) -> FakeClient:
    reads = kwargs.pop("reads", {SECURITY_UUID: CHALLENGE, STATUS_UUID: b"\x00\x00"})
    services = kwargs.pop("services", _standard_services() + [_esl_service()])
    return FakeClient(services, reads=reads, **kwargs)


async def _open_session(monkeypatch, client: FakeClient, settings=FAST) -> EslSession:
    async def _establish(**kwargs):
        return client

    monkeypatch.setattr(connection, "establish_connection", _establish)
    session = EslSession("AA:BB:CC:DD:EE:FF", settings, ble_device=BLE_DEVICE)
    await session.open()
    return session


class TestVendorService:
    """Test selection of the vendor service."""

    def test_standard_uuids_are_not_vendor(self):
        assert not is_vendor_service("00001800-0000-1000-8000-00805f9b34fb")
        assert not is_vendor_service("1801")
        assert not is_vendor_service("0000180A-0000-1000-8000-00805F9B34FB")

    def test_full_uuid_is_vendor(self):
        assert is_vendor_service(VENDOR_SERVICE)

    def test_first_vendor_service_wins(self):
        other = FakeService("12345678-0000-0000-0000-000000000000")
        services = _standard_services() + [_esl_service(), other]
        assert find_vendor_service(services).uuid == VENDOR_SERVICE

    def test_no_vendor_service(self):
        with pytest.raises(NoVendorServiceError):
            find_vendor_service(_standard_services())


@pytest.mark.asyncio
async def test_open_unlocks_and_selects_characteristics(monkeypatch) -> None:
    client = _client()

    session = await _open_session(monkeypatch, client)

    assert session.state == SessionState.READY
    assert session.vendor_service_uuid == VENDOR_SERVICE
    assert session.security_char.uuid == SECURITY_UUID
    assert session.command_char.uuid == COMMAND_UUID
    assert session.status_char.uuid == STATUS_UUID

    assert len(client.writes) == 1
    uuid, data, response = client.writes[0]
    assert uuid == SECURITY_UUID
    assert response is True
    assert AES.new(SECURITY_KEY, AES.MODE_ECB).decrypt(data) == CHALLENGE


@pytest.mark.asyncio
async def test_probe_skips_unreadable_and_wrong_length(monkeypatch) -> None:
    """A short read and a read error are skipped; the 16-byte one is the security char."""
    service = FakeService(
        VENDOR_SERVICE,
        [
            FakeChar(COMMAND_UUID, ["read", "write"]),
            FakeChar(STATUS_UUID, ["read", "write"]),
            FakeChar(SECURITY_UUID, ["read", "write"]),
        ],
    )
    client = _client(
        services=[service],
        reads={COMMAND_UUID: b"\x01\x02", STATUS_UUID: RuntimeError("denied"), SECURITY_UUID: CHALLENGE},
    )

    session = await _open_session(monkeypatch, client)

    assert client.read_uuids == [COMMAND_UUID, STATUS_UUID, SECURITY_UUID]
    assert session.security_char.uuid == SECURITY_UUID
    # First writable characteristic other than the security one
    assert session.command_char.uuid == COMMAND_UUID


@pytest.mark.asyncio
async def test_single_writable_char_doubles_as_command_char(monkeypatch) -> None:
    service = FakeService(VENDOR_SERVICE, [FakeChar(SECURITY_UUID, ["read", "write"])])
    client = _client(services=[service], reads={SECURITY_UUID: CHALLENGE})

    session = await _open_session(monkeypatch, client)

    assert session.command_char.uuid == SECURITY_UUID
    assert session.status_char is None


@pytest.mark.asyncio
async def test_missing_challenge_fails_and_disconnects(monkeypatch) -> None:
    client = _client(reads={SECURITY_UUID: b"\x00" * 8})

    with pytest.raises(SecurityHandshakeError):
        await _open_session(monkeypatch, client)

    assert client.is_connected is False


@pytest.mark.asyncio
async def test_missing_vendor_service_closes_session(monkeypatch) -> None:
    client = _client(services=_standard_services())

    async def _establish(**kwargs):
        return client

    monkeypatch.setattr(connection, "establish_connection", _establish)
    session = EslSession("AA:BB:CC:DD:EE:FF", FAST, ble_device=BLE_DEVICE)

    with pytest.raises(NoVendorServiceError):
        await session.open()

    assert session.state == SessionState.CLOSED
    assert client.is_connected is False


@pytest.mark.asyncio
async def test_discovery_failure_leaves_session_closed(monkeypatch) -> None:
    async def _not_found(address, timeout):
        raise DiscoveryTimeoutError(f"Peripheral not found within {timeout}s: {address}")

    monkeypatch.setattr(connection, "find_peripheral", _not_found)
    session = EslSession("AA:BB:CC:DD:EE:FF", FAST)

    with pytest.raises(DiscoveryTimeoutError):
        await session.open()

    assert session.state == SessionState.CLOSED


@pytest.mark.asyncio
async def test_connection_error_is_wrapped(monkeypatch) -> None:
    from esldisplay.exceptions import BLEConnectionError

    async def _establish(**kwargs):
        raise RuntimeError("le-connection-abort-by-local")

    monkeypatch.setattr(connection, "establish_connection", _establish)
    session = EslSession("AA:BB:CC:DD:EE:FF", FAST, ble_device=BLE_DEVICE)

    with pytest.raises(BLEConnectionError, match="Failed to connect"):
        await session.open()

    assert session.state == SessionState.CLOSED


@pytest.mark.asyncio
async def test_write_frame_sends_chunks_then_commit(monkeypatch) -> None:
    client = _client()
    session = await _open_session(monkeypatch, client)
    client.writes.clear()
    frame = bytes(i % 251 for i in range(30000))

    await session.write_frame(frame)

    assert len(client.writes) == 151
    assert all(uuid == COMMAND_UUID and response for uuid, _, response in client.writes)
    first = client.writes[0][1]
    assert first[:6] == b"\x00\xa5\x00\x00\x00\x00"
    assert first[6:] == frame[:200]
    last_chunk = client.writes[149][1]
    assert int.from_bytes(last_chunk[2:6], "little") == 29800
    assert client.writes[150][1] == b"\x01\xa5" + (30000).to_bytes(4, "little")


@pytest.mark.asyncio
async def test_clear_prefers_write_without_response(monkeypatch) -> None:
    client = _client()
    session = await _open_session(monkeypatch, client)
    client.writes.clear()

    await session.clear()

    assert client.writes == [(COMMAND_UUID, b"\x04\xa5", False)]


@pytest.mark.asyncio
async def test_flash_with_response_only_characteristic(monkeypatch) -> None:
    client = _client(services=[_esl_service(command_props=("write",))])
    session = await _open_session(monkeypatch, client)
    client.writes.clear()

    await session.flash(RgbCommandParams(red=0, green=255, blue=0))

    uuid, data, response = client.writes[0]
    assert uuid == COMMAND_UUID
    assert data[:5] == b"\x08\xa5\x00\xff\x00"
    assert response is True


@pytest.mark.asyncio
async def test_write_failure_raises(monkeypatch) -> None:
    client = _client()
    session = await _open_session(monkeypatch, client)
    client.fail_writes = True

    with pytest.raises(CharacteristicWriteError, match="GATT write failed"):
        await session.clear()


@pytest.mark.asyncio
async def test_poll_status_reports_errors(monkeypatch) -> None:
    client = _client()
    session = await _open_session(monkeypatch, client)
    client.reads[STATUS_UUID] = b"\x00\x02"

    status = await session.poll_status()

    assert status.busy is False
    assert status.errors == ("EPD write error",)


@pytest.mark.asyncio
async def test_poll_status_gives_up_while_busy(monkeypatch) -> None:
    client = _client()
    session = await _open_session(monkeypatch, client)
    client.reads[STATUS_UUID] = b"\x01\x00"

    status = await session.poll_status(timeout=0.05, interval=0.01)

    assert status.busy is True


@pytest.mark.asyncio
async def test_poll_status_read_failure_is_idle(monkeypatch) -> None:
    client = _client()
    session = await _open_session(monkeypatch, client)
    client.reads[STATUS_UUID] = RuntimeError("gone")

    status = await session.poll_status()

    assert status.busy is False
    assert status.errors == ()


@pytest.mark.asyncio
async def test_close_swallows_disconnect_errors(monkeypatch) -> None:
    client = _client(fail_disconnect=True)
    session = await _open_session(monkeypatch, client)

    await session.close()

    assert session.state == SessionState.CLOSED
    assert not session.is_connected


@pytest.mark.asyncio
async def test_context_manager_disconnects(monkeypatch) -> None:
    client = _client()

    async def _establish(**kwargs):
        return client

    monkeypatch.setattr(connection, "establish_connection", _establish)

    async with EslSession("AA:BB:CC:DD:EE:FF", FAST, ble_device=BLE_DEVICE) as session:
        assert session.state == SessionState.READY

    assert session.state == SessionState.CLOSED
    assert client.is_connected is False
