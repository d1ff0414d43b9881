import socket
import threading

import nonebot
import pytest
from pytest_asyncio import is_async_test


def pytest_collection_modifyitems(items: list[pytest.Item]):
    pytest_asyncio_tests = (item for item in items if is_async_test(item))
    session_scope_marker = pytest.mark.asyncio(loop_scope="session")
    for async_test in pytest_asyncio_tests:
        async_test.add_marker(session_scope_marker, append=False)


@pytest.fixture(scope="session", autouse=True)
async def after_nonebot_init(after_nonebot_init: None):
    nonebot.load_plugin("nonebot_plugin_mcstatus")


class FakeServer:
    """
    Accepts one connection, records the two packets the client sends, then
    replies with `response`. With `response=None` it never replies.
    """

    def __init__(self, response: bytes | None) -> None:
        self.response = response
        self.packets: list[bytes] = []
        self.release = threading.Event()
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(1)
        self.port: int = self.sock.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    @staticmethod
    def _read_varint(reader) -> int:
        result = 0
        for i in range(5):
            byte = reader.read(1)[0]
            result |= (byte & 0x7F) << 7 * i
            if not byte & 0x80:
                break
        return result

    def _serve(self) -> None:
        conn, _ = self.sock.accept()
        with conn, conn.makefile("rb") as reader:
            conn.settimeout(5)
            for _ in range(2):
                length = self._read_varint(reader)
                self.packets.append(reader.read(length))
            if self.response is None:
                self.release.wait(5)
            else:
                conn.sendall(self.response)

    def close(self) -> None:
        self.release.set()
        self.sock.close()
        self.thread.join(1)


@pytest.fixture
def fake_server():
    servers: list[FakeServer] = []

    def factory(response: bytes | None) -> FakeServer:
        server = FakeServer(response)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.close()


def status_response(payload: str, packet_id: int = 0x00) -> bytes:
    from nonebot_plugin_mcstatus.protocol import PacketBuffer, frame_packet

    body = PacketBuffer().write_varint(packet_id).write_string(payload).getvalue()
    return frame_packet(body)


@pytest.fixture
def make_response():
    return status_response
