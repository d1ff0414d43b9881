from nonebot import get_driver, require
from nonebot.plugin import PluginMetadata, inherit_supported_adapters

from .api import setup_api
from .config import Config
from .config import config as plugin_config
from .configs import lang, lang_data
from .utils import build_result, handle_exception, query_status

require("nonebot_plugin_alconna")
from arclet.alconna import Alconna, Args
from nonebot_plugin_alconna import Arparma, Text, UniMessage, on_alconna

__plugin_meta__ = PluginMetadata(
    name="Minecraft服务器状态",
    description="Minecraft Java版服务器状态查询，附带HTTP接口/Minecraft Java server status query with an HTTP API",  # noqa: E501
    type="application",
    supported_adapters=inherit_supported_adapters("nonebot_plugin_alconna"),
    config=Config,
    usage="""
    Minecraft Java版服务器状态查询
    用法：
        查服 [ip]:[端口] / 查服 [ip]
    HTTP：
        GET /api/server-status?address=[ip]:[端口]
    usage:
        mcstatus ip:port / mcstatus ip
    """.strip(),
)

check = on_alconna(
    Alconna("mcstatus", Args["host?", str]),
    aliases={"查服"},
    priority=10,
    block=True,
)

if plugin_config.api_enabled:
    setup_api(get_driver(), plugin_config.api_path)


@check.handle()
async def _(p: Arparma):
    if not p.find("host"):
        await check.finish(Text(f"{lang_data[lang]['where_ip']}"), reply_to=True)
    address: str = p.query("host")  # type: ignore

    try:
        status, latency = await query_status(address)
    except Exception as e:
        await check.finish(handle_exception(e), reply_to=True)

    await check.send(
        UniMessage(build_result(status, address, latency)), reply_to=True
    )
