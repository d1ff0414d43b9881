import os

import ujson

from .config import config as plugin_config


def readInfo(file: str) -> dict:
    with open(
        os.path.join(os.path.dirname(__file__), file), encoding="utf-8"
    ) as f:
        return ujson.loads((f.read()).strip())


lang_data = readInfo("language.json")
lang = plugin_config.language if plugin_config.language in lang_data else "zh-cn"
