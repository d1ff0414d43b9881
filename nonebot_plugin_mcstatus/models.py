import re
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
import ujson

from .exception import DecodeError


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


_Section = TypeVar("_Section", bound=_Frozen)


class Version(_Frozen):
    name: str = ""
    """服务器版本名称"""
    protocol: int = 0
    """服务器协议版本"""


class PlayerSample(_Frozen):
    name: str = ""
    id: str = ""


class Players(_Frozen):
    max: int = Field(default=0, ge=0)
    online: int = Field(default=0, ge=0)
    sample: list[PlayerSample] = Field(default_factory=list)
    """在线玩家样本，保持服务器给出的顺序，即使 `online` 大于0也可能为空"""

    @field_validator("sample", mode="before")
    @classmethod
    def _null_sample(cls, value: Any) -> Any:
        return [] if value is None else value


class DescriptionExtra(_Frozen):
    text: str = ""
    color: str | None = None


class Description(_Frozen):
    text: str = ""
    extra: list[DescriptionExtra] = Field(default_factory=list)

    @field_validator("extra", mode="before")
    @classmethod
    def _null_extra(cls, value: Any) -> Any:
        return [] if value is None else value


class ServerStatus(_Frozen):
    version: Version = Field(default_factory=Version)
    players: Players = Field(default_factory=Players)
    description: Description = Field(default_factory=Description)
    favicon: str | None = None
    """base64 编码的 data URI 图标，原样保留"""


_UNICODE_ESCAPE = re.compile(
    r"\\u(d[89ab][0-9a-f]{2})\\u(d[c-f][0-9a-f]{2})|\\u([0-9a-f]{4})",
    re.IGNORECASE,
)


def _replace_escape(match: re.Match[str]) -> str:
    if match[1]:
        high, low = int(match[1], 16), int(match[2], 16)
        return chr(0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00))

    code = int(match[3], 16)
    if 0xD800 <= code <= 0xDFFF:
        return "\ufffd"
    return chr(code)


def unescape_unicode(text: str) -> str:
    """
    将字符串中残留的 `\\uXXXX` 转义序列替换为对应字符。

    部分服务端会对已解码的文本再做一次 JSON 转义。
    反复替换直到不再出现有效序列，格式不正确的序列原样保留，
    单独出现的代理项替换为 U+FFFD。
    """
    while "\\u" in text:
        unescaped = _UNICODE_ESCAPE.sub(_replace_escape, text)
        if unescaped == text:
            break
        text = unescaped
    return text


def normalize_description(raw: Any) -> Description:
    """
    将线路上的 description 统一为 `Description`。

    - 字符串：作为 `text`
    - 对象：取其中的 `text` 字符串，忽略 `extra`
    - 其他形态：空文本
    """
    if isinstance(raw, str):
        return Description(text=raw)
    if isinstance(raw, dict) and isinstance(text := raw.get("text"), str):
        return Description(text=text)
    return Description()


def _unescape_status(status: ServerStatus) -> ServerStatus:
    description = status.description
    extra = [
        item.model_copy(update={"text": unescape_unicode(item.text)})
        for item in description.extra
    ]
    return status.model_copy(
        update={
            "description": description.model_copy(
                update={"text": unescape_unicode(description.text), "extra": extra}
            )
        }
    )


def _lenient_section(model: type[_Section], value: Any) -> _Section | None:
    try:
        return model.model_validate({} if value is None else value)
    except ValidationError:
        return None


def _lenient_players(value: Any) -> Players:
    """依次尝试完整的 players、去掉 sample 的 players，都不符合时使用默认值"""
    players = _lenient_section(Players, value)
    if players is None and isinstance(value, dict):
        players = _lenient_section(Players, {**value, "sample": []})
    return players or Players()


def decode_status(payload: bytes | bytearray | str) -> ServerStatus:
    """
    解析状态响应中的 JSON 负载。

    整体校验失败时逐段解析：description 统一为 `Description`，
    不符合结构的 version、players 或 sample 使用默认值。

    :param payload: 去掉包头与长度前缀的原始负载
    :raises DecodeError: JSON 无法解析，或负载不是 JSON 对象
    """
    if isinstance(payload, bytes | bytearray):
        payload = payload.decode("utf-8", errors="replace")

    try:
        payload_obj = ujson.loads(payload)
    except ujson.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON payload: {e}") from e

    try:
        status = ServerStatus.model_validate(payload_obj)
    except ValidationError:
        if not isinstance(payload_obj, dict):
            raise DecodeError(
                f"payload is a JSON {type(payload_obj).__name__}, not an object"
            ) from None

        favicon = payload_obj.get("favicon")
        status = ServerStatus(
            version=_lenient_section(Version, payload_obj.get("version")) or Version(),
            players=_lenient_players(payload_obj.get("players")),
            description=normalize_description(payload_obj.get("description")),
            favicon=favicon if isinstance(favicon, str) else None,
        )

    return _unescape_status(status)
