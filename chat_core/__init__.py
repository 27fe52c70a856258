"""Chat Core 顶层包。

该包提供 NeuraMorphosis 聊天客户端的核心实现，
包括配置加载、领域模型、Backend Gateway 适配、会话上下文管理、
流式折叠、标题生成、摘要追问与持久化存储等能力。
"""

from chat_core.api.service import get_default_engine, send_message

__all__ = ["get_default_engine", "send_message"]
