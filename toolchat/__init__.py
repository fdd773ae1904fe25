"""
toolchat - 工具增强对话的上下文管理

在调用模型之前估算对话窗口大小，超出预算时压缩历史消息
"""

__version__ = "0.1.0"
