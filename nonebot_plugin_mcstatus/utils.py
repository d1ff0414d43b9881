import asyncio
import base64
import binascii
import re
import traceback
from time import perf_counter

from nonebot import logger, require
import ujson

from .config import config as plugin_config
from .configs import lang, lang_data
from .data_source import get_server_status
from .exception import MCStatusError
from .models import Description, ServerStatus

require("nonebot_plugin_alconna")
from nonebot_plugin_alconna import Image, Text


def handle_exception(e: BaseException) -> Text:
    if isinstance(e, MCStatusError):
        logger.warning(f"{type(e).__name__}: {e}")
        return Text(f"{lang_data[lang].get(type(e).__name__, '')}\n{e}")

    logger.error(traceback.format_exc())
    return Text(f"[CrashHandle]{e}\n>>更多信息详见日志文件<<")


async def query_status(address: str) -> tuple[ServerStatus, int]:
    """
    在工作线程中查询服务器状态。

    :params address: `host` 或 `host:port`

    :returns: 服务器状态与耗时（毫秒）
    """
    start_time = perf_counter()
    status = await asyncio.to_thread(
        get_server_status,
        address,
        plugin_config.connect_timeout,
        plugin_config.timeout,
        plugin_config.resolve_srv,
    )
    latency = round((perf_counter() - start_time) * 1000)
    logger.info(
        f"Queried {address}: {status.version.name}, "
        f"{status.players.online}/{status.players.max} players, {latency}ms"
    )
    return status, latency


def strip_formatting(text: str) -> str:
    """去除 MOTD 中的 § 格式代码"""
    return re.sub(r"§.", "", text)


def description_to_text(description: Description) -> str:
    """将描述及其附加片段拼接为去除格式后的纯文本"""
    return strip_formatting(
        description.text + "".join(extra.text for extra in description.extra)
    )


def decode_favicon(favicon: str | None) -> bytes | None:
    """解码 data URI 形式的图标，格式不正确时返回 None"""
    if not favicon or "," not in favicon:
        return None
    try:
        return base64.b64decode(favicon.split(",", 1)[1], validate=True)
    except (binascii.Error, ValueError):
        return None


def build_result(
    status: ServerStatus, address: str, latency: int
) -> list[Text | Image]:
    """
    构建聊天回复。

    :params status: 服务器状态
    :params address: 用户输入的地址
    :params latency: 查询耗时（毫秒）
    """
    result = (
        f"{lang_data[lang]['version']}{status.version.name}"
        f"\n{lang_data[lang]['protocol_version']}{status.version.protocol}"
        f"\n{lang_data[lang]['address']}{address}"
        f"\n{lang_data[lang]['delay']}{latency}ms"
        f"\n{lang_data[lang]['motd']}{description_to_text(status.description)}"
        f"\n{lang_data[lang]['players']}"
        f"{status.players.online}/{status.players.max}"
    )
    if status.players.sample:
        names = ", ".join(strip_formatting(p.name) for p in status.players.sample)
        result += f"\n{lang_data[lang]['player_list']}{names}"

    if favicon := decode_favicon(status.favicon):
        return [Text(result), Text("\nFavicon:"), Image(raw=favicon)]
    return [Text(result)]


def status_to_json(status: ServerStatus) -> str:
    return ujson.dumps(status.model_dump(exclude_none=True), ensure_ascii=False)
