"""LLM 调用相关错误定义"""


class LLMError(Exception):
    """LLM 基础错误类"""

    def __init__(self, message: str, details: str = ""):
        """初始化 LLM 错误

        Args:
            message: 错误消息
            details: 错误详情
        """
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class LLMConfigError(LLMError):
    """LLM 配置错误

    缺少 API Key、未知的 provider 等情况下抛出
    """

    pass


class LLMResponseError(LLMError):
    """LLM 响应错误

    provider 返回的响应无法解析或不符合预期时抛出
    """

    pass
