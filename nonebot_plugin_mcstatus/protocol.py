# Server List Ping 的数据包编码
#
# 协议文档见
# https://minecraft.wiki/w/Minecraft_Wiki:Projects/wiki.vg_merge/Server_List_Ping

from collections.abc import Callable
import socket
import struct
from time import monotonic

from .exception import ProtocolError

VARINT_MAX_BYTES = 5
"""32 位 VarInt 最多占用的字节数"""
HANDSHAKE_PACKET_ID = 0x00
STATUS_REQUEST_PACKET_ID = 0x00
STATUS_RESPONSE_PACKET_ID = 0x00
STATUS_PING_PROTOCOL = -1
"""握手包中的协议版本，-1 表示仅查询状态"""
NEXT_STATE_STATUS = 1
RECV_CHUNK_SIZE = 65536
"""单次 recv 的上限，缓冲区只随实际收到的数据增长"""


def encode_varint(value: int) -> bytes:
    """
    将有符号 32 位整数编码为 VarInt。

    负数按无符号 32 位解释，因此 `-1` 编码为 `FF FF FF FF 0F`。
    """
    if not -(2**31) <= value < 2**31:
        raise ValueError(f"VarInt out of range: {value}")

    value &= 0xFFFFFFFF
    ordinal = b""
    while True:
        byte = value & 0x7F
        value >>= 7
        ordinal += struct.pack("B", byte | (0x80 if value else 0))

        if value == 0:
            break

    return ordinal


def read_varint(read_byte: Callable[[], int]) -> int:
    """
    从字节源中逐字节读取一个 VarInt。

    :param read_byte: 每次调用返回下一个字节的值
    :returns: 有符号 32 位整数
    """
    result = 0
    for i in range(VARINT_MAX_BYTES):
        byte = read_byte()
        result |= (byte & 0x7F) << 7 * i

        if not byte & 0x80:
            break
    else:
        raise ProtocolError(f"VarInt is longer than {VARINT_MAX_BYTES} bytes")

    result &= 0xFFFFFFFF
    if result & 0x80000000:
        result -= 1 << 32
    return result


def decode_varint(data: bytes | bytearray, offset: int = 0) -> tuple[int, int]:
    """从内存中的数据解码 VarInt，返回 (值, 下一个偏移量)"""
    position = offset

    def read_byte() -> int:
        nonlocal position
        if position >= len(data):
            raise ProtocolError("truncated VarInt")
        byte = data[position]
        position += 1
        return byte

    value = read_varint(read_byte)
    return value, position


class PacketBuffer:
    """只追加的数据包构建缓冲区，每个数据包使用一个新实例"""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def write_varint(self, value: int) -> "PacketBuffer":
        self._buffer += encode_varint(value)
        return self

    def write_string(self, value: str) -> "PacketBuffer":
        """写入字符串，长度前缀为 UTF-8 字节数而非字符数"""
        data = value.encode("utf-8")
        self.write_varint(len(data))
        self._buffer += data
        return self

    def write_unsigned_short(self, value: int) -> "PacketBuffer":
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"unsigned short out of range: {value}")
        self._buffer += struct.pack(">H", value)
        return self

    def write_bytes(self, data: bytes | bytearray) -> "PacketBuffer":
        self._buffer += data
        return self

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def __bytes__(self) -> bytes:
        return self.getvalue()

    def __len__(self) -> int:
        return len(self._buffer)


def frame_packet(body: bytes) -> bytes:
    """在数据包前加上 VarInt 长度前缀"""
    return PacketBuffer().write_varint(len(body)).write_bytes(body).getvalue()


def send_packet(sock: socket.socket, body: bytes) -> None:
    """所有发出的数据包都经由此处一次性写入连接"""
    sock.sendall(frame_packet(body))


def build_handshake(host: str, port: int) -> bytes:
    """
    构建握手包。

    :param host: 用户输入的原始主机名，部分服务端依赖它做虚拟主机路由
    :param port: 服务器端口
    """
    return (
        PacketBuffer()
        .write_varint(HANDSHAKE_PACKET_ID)
        .write_varint(STATUS_PING_PROTOCOL)
        .write_string(host)
        .write_unsigned_short(port)
        .write_varint(NEXT_STATE_STATUS)
        .getvalue()
    )


def build_status_request() -> bytes:
    return PacketBuffer().write_varint(STATUS_REQUEST_PACKET_ID).getvalue()


class PacketStream:
    """
    在一个总时限内对已连接的套接字进行收发。

    每次读写前都会把套接字的超时设为剩余时间，时限耗尽时抛出 `TimeoutError`。
    连接在读取过程中被关闭时抛出 `ConnectionAbortedError`。
    """

    def __init__(self, sock: socket.socket, timeout: float) -> None:
        self.sock = sock
        self.deadline = monotonic() + timeout

    def _arm(self) -> None:
        remaining = self.deadline - monotonic()
        if remaining <= 0:
            raise TimeoutError("deadline exceeded")
        self.sock.settimeout(remaining)

    def send_packet(self, body: bytes) -> None:
        self._arm()
        send_packet(self.sock, body)

    def read_exact(self, size: int) -> bytearray:
        data = bytearray()

        while len(data) < size:
            self._arm()
            if temp_data := self.sock.recv(min(size - len(data), RECV_CHUNK_SIZE)):
                data += temp_data
            else:
                raise ConnectionAbortedError(
                    f"connection closed after {len(data)} of {size} bytes"
                )

        return data

    def read_byte(self) -> int:
        return self.read_exact(1)[0]

    def read_varint(self) -> int:
        return read_varint(self.read_byte)

    def read_status_response(self) -> bytes:
        """
        读取状态响应包并返回其中的 JSON 负载。

        包总长度只读取不校验。
        """
        self.read_varint()

        packet_id = self.read_varint()
        if packet_id != STATUS_RESPONSE_PACKET_ID:
            raise ProtocolError(f"unexpected packet id 0x{packet_id & 0xFFFFFFFF:02x}")

        content_len = self.read_varint()
        if content_len < 0:
            raise ProtocolError(f"invalid payload length {content_len}")

        return bytes(self.read_exact(content_len))
