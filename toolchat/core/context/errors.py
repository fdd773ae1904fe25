"""上下文管理相关错误定义

这些错误只在压缩策略内部抛出，由 ContextManager 的回退链统一捕获，
不会传递到聊天请求的调用方
"""


class ContextError(Exception):
    """上下文管理基础错误类"""

    def __init__(self, message: str, details: str = ""):
        """初始化上下文错误

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


class ContextConfigError(ContextError):
    """上下文配置错误

    预算参数非法，或所选策略缺少必需的 provider/凭据时抛出
    """

    pass


class CompactionError(ContextError):
    """压缩策略执行失败"""

    def __init__(self, message: str, strategy: str = "", error_details: Exception = None):
        """初始化压缩错误

        Args:
            message: 错误消息
            strategy: 失败的策略名称
            error_details: 原始异常
        """
        self.strategy = strategy
        self.error_details = error_details
        super().__init__(message=message, details=str(error_details) if error_details else "")


class SummarizationError(CompactionError):
    """LLM 总结失败"""

    def __init__(self, message: str, error_details: Exception = None):
        super().__init__(message, strategy="summary", error_details=error_details)


class ContextEditingError(CompactionError):
    """provider 端上下文编辑失败"""

    def __init__(self, message: str, error_details: Exception = None):
        super().__init__(message, strategy="context_editing", error_details=error_details)


class NoEditsAppliedError(ContextEditingError):
    """provider 未应用任何编辑"""

    pass


class CompactionTimeoutError(CompactionError):
    """压缩过程中的网络调用超时"""

    def __init__(self, message: str, timeout: float, strategy: str = ""):
        self.timeout = timeout
        super().__init__(message, strategy=strategy)
