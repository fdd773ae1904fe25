"""项目常量定义

统一管理项目中的魔法数字和默认配置值，上下文管理相关的常量都是可调参数，
运行时通过 ContextBudget 覆盖
"""

# ============================================================================
# 路径和文件名常量
# ============================================================================

# 工作区目录名
TOOLCHAT_DIR = ".toolchat"

# 配置文件
CONFIG_FILE = "config.yaml"

# 日志目录
LOG_DIR = "logs"

# ============================================================================
# 日志配置常量
# ============================================================================

LOG_LEVEL = "INFO"
LOG_FILE = "toolchat.log"
LOG_ROTATION = "10 MB"
LOG_RETENTION = "14 days"
LOG_COMPRESSION = "tar.gz"
LOG_ENCODING = "utf-8"

# 日志格式
LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "{thread.name}:{thread.id} | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# ============================================================================
# LLM 配置常量
# ============================================================================

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_TIMEOUT = 60.0  # 秒
DEFAULT_MAX_RETRIES = 3

# ============================================================================
# 配置管理常量
# ============================================================================

DEFAULT_SYSTEM_VERSION = "0.1.0"
WORKSPACE_SEARCH_MAX_DEPTH = 3

# ============================================================================
# Token 估算常量
# ============================================================================

# 每个 token 大约对应的字符数
CHARS_PER_TOKEN = 3.5
# 每个工具调用/工具结果额外计入的字符数
TOOL_CALL_OVERHEAD = 50
# 每个声明的工具 schema 额外计入的 token 数
TOOL_SCHEMA_OVERHEAD = 200
# 工具 schema 体积估算使用的字符/token 比例
TOOL_SCHEMA_CHARS_PER_TOKEN = 3

# ============================================================================
# 上下文压缩常量
# ============================================================================

CONTEXT_BUDGET_VERSION = 1
DEFAULT_MAX_CONTEXT_TOKENS = 100_000
KEEP_RECENT_MESSAGES = 8
# 可压缩的旧消息少于该数量时不压缩
MIN_MESSAGES_TO_COMPACT = 3
# 寻找安全切分点时最多向前回溯的消息数
SPLIT_SEARCH_WINDOW = 3
# 兜底截断时保留的最新消息数
TRUNCATION_KEEP_RECENT = 8
# 压缩过程中单次网络调用的超时时间（秒）
COMPACTION_TIMEOUT = 30.0

# Summary 策略
SUMMARY_MAX_OUTPUT_TOKENS = 2000
SUMMARY_TEMPERATURE = 0.3
SUMMARY_PREVIEW_CHARS = 300

# Context editing 策略
CONTEXT_EDITING_BETA = "context-management-2025-06-27"
CLEAR_THINKING_EDIT = "clear_thinking_20251015"
CLEAR_TOOL_USES_EDIT = "clear_tool_uses_20250919"
KEEP_THINKING_TURNS = 2
CLEAR_TOOL_USES_TRIGGER_TOKENS = 20_000
KEEP_TOOL_USES = 1
CLEAR_AT_LEAST_TOKENS = 15_000
CONTEXT_EDITING_MODEL = "claude-sonnet-4-20250514"
CONTEXT_EDITING_MAX_TOKENS = 2048
CONTEXT_EDITING_THINKING_BUDGET = 1024
CLEARED_TOOL_RESULT_PLACEHOLDER = "[tool result cleared]"

# ============================================================================
# 上下文用量告警常量
# ============================================================================

DEFAULT_CONTEXT_LIMIT = 200_000
MODEL_CONTEXT_LIMITS = {
    "claude-4-5-sonnet": 200_000,
    "claude-sonnet-4-20250514": 200_000,
    "gpt-4o": 128_000,
    "gpt-4.1-mini": 128_000,
    "qwen-qwq": 32_000,
    "grok-3-mini": 128_000,
}
# 达到该比例时提示用户开启新会话
CONTEXT_WARNING_THRESHOLD = 0.90
# 达到该比例时阻止继续输入
CONTEXT_BLOCK_THRESHOLD = 0.95

TOOL_SCHEMA_WARNING_TOKENS = 150_000
TOOL_SCHEMA_ERROR_TOKENS = 180_000
