"""领域层模型与协议。

包含：
- models: Message / Attachment / ChatRequest 等数据模型。
- conversation: 不可变会话状态、状态事件、reduce 以及 ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""
