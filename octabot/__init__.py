"""Octabot 顶层包。

该包提供聊天客户端的核心实现，包括配置加载、领域模型、
Azure 服务网关、图片附件预处理、对话编排与会话状态管理。
"""

from octabot.api.service import ChatSession, get_default_session

__all__ = ["ChatSession", "get_default_session"]
