"""Backend Gateway 集成层。

该包下的模块负责：
- 定义 Gateway 抽象接口 (base)。
- 维护模型列表与模型能力 (registry)。
- 提供具体实现 (gemini_client 直连、proxy_client 走代理)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.providers.base import GatewayClient
from chat_core.providers.gemini_client import GeminiClient
from chat_core.providers.proxy_client import ProxyClient


def create_provider(name: Optional[str] = None) -> GatewayClient:
    """根据名称创建 Gateway 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "gemini")).lower()
    if provider_name == "proxy":
        return ProxyClient(settings)
    return GeminiClient(settings)

