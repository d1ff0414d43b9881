from enum import Enum


class Phase(Enum):
    """
    查询过程中的阶段，用于标注错误发生的位置
    - `RESOLVE`：解析地址与端口、DNS 查询
    - `CONNECT`：建立 TCP 连接
    - `HANDSHAKE`：发送握手包与状态请求包
    - `READ`：读取服务器响应
    - `DECODE`：解析 JSON 负载
    """

    def __str__(self) -> str:
        return self.value

    RESOLVE = "resolve"
    CONNECT = "connect"
    HANDSHAKE = "handshake"
    READ = "read"
    DECODE = "decode"


class MCStatusError(Exception):
    """查询失败的基类，`phase` 标明失败所在的阶段"""

    def __init__(self, message: str, phase: Phase | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase

    def __str__(self) -> str:
        if self.phase is None:
            return self.message
        return f"{self.phase}: {self.message}"


class ResolutionError(MCStatusError):
    """端口无效、主机名无法解析或没有可用地址"""


class ServerConnectionError(MCStatusError):
    """TCP 连接失败或连接超时"""


class TransportError(MCStatusError):
    """读写失败、数据不完整或超过总时限"""


class ProtocolError(MCStatusError):
    """意外的数据包 ID 或格式错误的 VarInt"""


class DecodeError(MCStatusError):
    """JSON 负载无法解析"""
