"""远程 AI 服务集成层。

该包下的模块负责：
- 定义服务网关抽象接口 (base)。
- 维护端点与固定请求参数 (registry)。
- 提供具体实现 (azure_openai_client、vision_client) 及组合网关 (gateway)。
"""

from octabot.config.settings import settings
from octabot.providers.base import ServiceGateway
from octabot.providers.gateway import AzureServiceGateway


def create_gateway(cfg=None) -> ServiceGateway:
    """根据配置创建服务网关，默认取全局 settings。"""

    return AzureServiceGateway(cfg or settings)
