from nonebot.plugin import get_plugin_config
from pydantic import BaseModel, Field


class ScopedConfig(BaseModel):
    language: str = Field(default="zh-cn")
    """插件回复所使用的语言"""
    connect_timeout: float = Field(default=5.0, gt=0)
    """建立 TCP 连接的超时时间（秒）"""
    timeout: float = Field(default=10.0, gt=0)
    """连接建立后整个查询过程的总时限（秒）"""
    resolve_srv: bool = Field(default=False)
    """地址未指定端口时是否先查询 SRV 记录"""
    api_enabled: bool = Field(default=True)
    """是否注册 HTTP 查询接口"""
    api_path: str = Field(default="/api/server-status")
    """HTTP 查询接口路径"""


class Config(BaseModel):
    mcs: ScopedConfig = Field(default_factory=ScopedConfig)
    """MCStatus Config"""


config: ScopedConfig = get_plugin_config(Config).mcs
