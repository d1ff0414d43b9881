from nonebot import logger
from nonebot.drivers import ASGIMixin, Driver, HTTPServerSetup, Request, Response, URL
import ujson

from .configs import lang, lang_data
from .exception import MCStatusError
from .utils import query_status, status_to_json

JSON_HEADERS = {"Content-Type": "application/json; charset=utf-8"}


def _error(status_code: int, message: str) -> Response:
    return Response(
        status_code,
        headers=JSON_HEADERS,
        content=ujson.dumps({"error": message}, ensure_ascii=False),
    )


async def server_status(request: Request) -> Response:
    """`GET ?address=host[:port]`，成功时返回服务器状态 JSON"""
    address = request.url.query.get("address", "").strip()
    if not address:
        return _error(400, lang_data[lang]["empty_address"])

    try:
        status, _ = await query_status(address)
    except MCStatusError as e:
        logger.warning(f"Query {address} failed: {type(e).__name__}: {e}")
        return _error(500, str(e))

    return Response(200, headers=JSON_HEADERS, content=status_to_json(status))


def setup_api(driver: Driver, path: str) -> bool:
    """在支持 ASGI 的驱动器上注册查询接口，返回是否注册成功"""
    if not isinstance(driver, ASGIMixin):
        logger.warning(
            f"Driver {driver.type} does not serve HTTP, {path} is not registered"
        )
        return False

    driver.setup_http_server(
        HTTPServerSetup(
            path=URL(path),
            method="GET",
            name="mcstatus_server_status",
            handle_func=server_status,
        )
    )
    logger.info(f"Server status API registered at {path}")
    return True
