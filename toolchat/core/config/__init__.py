"""配置模块"""

from toolchat.core.config.config_manager import (
    ConfigManager,
    build_config,
    find_config_files,
    get_user_config_dir,
    load_config_from_file,
    resolve_workspace_dir,
)
from toolchat.core.config.models import (
    Config,
    ConfigMeta,
    ContextSection,
    EditingSection,
    ModelEntry,
    ModelSection,
    SummarySection,
    resolve_api_key,
)

__all__ = [
    "Config",
    "ConfigManager",
    "ConfigMeta",
    "ContextSection",
    "EditingSection",
    "ModelEntry",
    "ModelSection",
    "SummarySection",
    "build_config",
    "find_config_files",
    "get_user_config_dir",
    "load_config_from_file",
    "resolve_api_key",
    "resolve_workspace_dir",
]
