# Minecraft Java 版服务器状态查询（Server List Ping，1.7+）
#
# 协议说明见
# https://minecraft.wiki/w/Minecraft_Wiki:Projects/wiki.vg_merge/Server_List_Ping

from collections.abc import Iterator
import contextlib
import ipaddress
import re
import socket
from time import perf_counter
from typing import NamedTuple

import dns.exception
import dns.resolver
import idna
from nonebot import logger

from .exception import (
    DecodeError,
    MCStatusError,
    Phase,
    ResolutionError,
    ServerConnectionError,
    TransportError,
)
from .models import ServerStatus, decode_status
from .protocol import PacketStream, build_handshake, build_status_request

DEFAULT_PORT = 25565
"""SLP 查询的默认 TCP 端口"""
DEFAULT_CONNECT_TIMEOUT = 5.0
"""建立连接的超时时间（秒）"""
DEFAULT_TIMEOUT = 10.0
"""连接建立后整个交换过程的总时限（秒）"""

_ADDRESS_PATTERN = re.compile(r"(?:\[(.+?)\]|([^:：]*))(?:[:：](.*))?$")


class ServerAddress(NamedTuple):
    host: str
    port: int
    explicit_port: bool = True
    """地址中是否显式给出了端口"""


def parse_address(address: str) -> ServerAddress:
    """
    解析 `host`、`host:port` 或 `[IPv6]:port` 形式的地址。

    未指定端口时使用 25565。不带方括号的 IPv6 地址整体视为主机。

    :raises ResolutionError: 主机为空或端口无效
    """
    address = address.strip()
    host, port_str = address, None

    if address.count(":") > 1 and not address.startswith("["):
        host = address
    elif match := _ADDRESS_PATTERN.match(address):
        host = match[1] or match[2]
        port_str = match[3]

    if not host:
        raise ResolutionError(f"missing host in address {address!r}", Phase.RESOLVE)

    if port_str is None:
        return ServerAddress(host, DEFAULT_PORT, False)

    if not port_str.isdecimal() or not 0 <= int(port_str) <= 65535:
        raise ResolutionError(f"invalid port {port_str!r}", Phase.RESOLVE)

    return ServerAddress(host, int(port_str))


def is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def _to_ascii(host: str) -> str:
    try:
        return idna.encode(host, uts46=True).decode("ascii")
    except idna.IDNAError:
        return host


def _resolve_srv(
    resolver: dns.resolver.Resolver, host: str
) -> tuple[str, int] | None:
    """查询 `_minecraft._tcp` SRV 记录，没有记录时返回 None"""
    with contextlib.suppress(
        dns.resolver.NoAnswer,
        dns.resolver.NXDOMAIN,
        dns.resolver.NoNameservers,
        dns.exception.Timeout,
    ):
        for rdata in resolver.resolve(f"_minecraft._tcp.{_to_ascii(host)}", "SRV"):
            return str(rdata.target).rstrip("."), rdata.port  # type: ignore
    return None


def resolve_host(
    host: str, port: int, resolve_srv: bool = False, timeout: float = 10
) -> tuple[str, int]:
    """
    将主机解析为 IP 地址，依次尝试 A 和 AAAA 记录，只取第一条结果。

    :param host: 主机名或 IP 地址
    :param port: 目标端口
    :param resolve_srv: 是否先尝试 SRV 记录，SRV 存在时其目标与端口优先
    :param timeout: DNS 查询的总时限
    :returns: (IP 地址, 端口)
    """
    if is_ip_address(host):
        return host, port

    try:
        resolver = dns.resolver.Resolver()
        resolver.lifetime = timeout

        if resolve_srv and (srv := _resolve_srv(resolver, host)):
            host, port = srv
            if is_ip_address(host):
                return host, port

        name = _to_ascii(host)
        for rdtype in ("A", "AAAA"):
            with contextlib.suppress(dns.resolver.NoAnswer):
                for rdata in resolver.resolve(name, rdtype):
                    return str(rdata.address), port  # type: ignore
    except dns.exception.DNSException as e:
        raise ResolutionError(f"cannot resolve {host!r}: {e}") from e

    raise ResolutionError(f"no address found for {host!r}")


@contextlib.contextmanager
def _phase(phase: Phase, error: type[MCStatusError]) -> Iterator[None]:
    """为阶段内的错误标注阶段，并将套接字错误转换为该阶段对应的错误类型"""
    try:
        yield
    except MCStatusError as e:
        if e.phase is None:
            e.phase = phase
        raise
    except OSError as e:
        raise error(str(e) or type(e).__name__, phase) from e


def get_server_status(
    address: str,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    timeout: float = DEFAULT_TIMEOUT,
    resolve_srv: bool = False,
) -> ServerStatus:
    """
    查询 Minecraft Java 版服务器状态。该函数会阻塞，不会重试。

    :param address: `host` 或 `host:port`，默认端口 25565
    :param connect_timeout: 建立 TCP 连接的超时时间
    :param timeout: 连接建立后发送握手到读完响应的总时限
    :param resolve_srv: 地址未指定端口时是否先查询 SRV 记录

    :returns: 服务器状态
    :raises MCStatusError: 任一阶段失败时抛出对应的子类
    """
    start_time = perf_counter()
    log = logger.bind(address=address)

    def elapsed() -> int:
        return round((perf_counter() - start_time) * 1000)

    with _phase(Phase.RESOLVE, ResolutionError):
        target = parse_address(address)
        ip, port = resolve_host(
            target.host,
            target.port,
            resolve_srv and not target.explicit_port,
            connect_timeout,
        )
    log.debug(f"Resolved {target.host} to {ip}:{port} in {elapsed()}ms")

    with _phase(Phase.CONNECT, ServerConnectionError):
        sock = socket.create_connection((ip, port), timeout=connect_timeout)
    log.debug(f"Connected to {ip}:{port} in {elapsed()}ms")

    with contextlib.closing(sock):
        stream = PacketStream(sock, timeout)

        with _phase(Phase.HANDSHAKE, TransportError):
            stream.send_packet(build_handshake(target.host, port))
            stream.send_packet(build_status_request())
        log.debug("Handshake and status request sent")

        with _phase(Phase.READ, TransportError):
            payload = stream.read_status_response()
        log.debug(f"Received {len(payload)} bytes of status payload in {elapsed()}ms")

    with _phase(Phase.DECODE, DecodeError):
        status = decode_status(payload)
    log.debug(
        f"Decoded status of {address}: {status.version.name} "
        f"({status.players.online}/{status.players.max})"
    )

    return status
