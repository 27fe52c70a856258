"""领域层模型与协议。

包含：
- models: Message / HistoryItem / SamplingConfig / Preferences 等数据模型。
- conversation: 会话模型与 ConversationStore（消息状态的唯一所有者）。
- exceptions: 业务异常类型定义。
"""
