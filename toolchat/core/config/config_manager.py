"""配置管理模块

从用户目录和项目目录查找 config.yaml，合并后解析为 Config
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from toolchat.core.constants import CONFIG_FILE, TOOLCHAT_DIR, WORKSPACE_SEARCH_MAX_DEPTH
from toolchat.core.config.models import Config, ConfigMeta
from toolchat.core.utils.logger import logger


def _merge_entries_by_key(
    base_entries: List[Dict[str, Any]],
    override_entries: List[Dict[str, Any]],
    key: str = "model",
) -> List[Dict[str, Any]]:
    """按 key 字段合并两个条目列表

    key 相同的条目字段级合并，override 中的值优先；没有 key 的条目被忽略

    Args:
        base_entries: 用户配置中的条目
        override_entries: 项目配置中的条目
        key: 标识条目的字段名

    Returns:
        List[Dict[str, Any]]: 合并后的条目，保持首次出现的顺序
    """
    merged: Dict[Any, Dict[str, Any]] = {}
    for entry in list(base_entries) + list(override_entries):
        if not isinstance(entry, dict) or key not in entry:
            continue
        merged.setdefault(entry[key], {}).update(entry)
    return list(merged.values())


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """递归合并配置字典，override 优先

    字典递归合并，entries 列表按 model 合并，其余值直接覆盖
    """
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = _deep_merge(current, value)
        elif key == "entries" and isinstance(current, list) and isinstance(value, list):
            result[key] = _merge_entries_by_key(current, value, "model")
        else:
            result[key] = value
    return result


def get_user_config_dir() -> Path:
    """返回用户配置目录 ~/.toolchat"""
    return Path.home() / TOOLCHAT_DIR


def resolve_workspace_dir(start: Optional[Path] = None) -> Path:
    """向上查找包含 .toolchat 目录的工作区

    用户主目录下的 .toolchat 是用户配置，不作为工作区。
    最多向上查找 WORKSPACE_SEARCH_MAX_DEPTH 级，找不到时返回起始目录

    Args:
        start: 起始目录，默认为当前目录

    Returns:
        Path: 工作区目录
    """
    origin = (start or Path.cwd()).resolve()
    home = Path.home().resolve()
    current = origin
    for _ in range(WORKSPACE_SEARCH_MAX_DEPTH):
        if current != home and (current / TOOLCHAT_DIR).is_dir():
            return current
        if current.parent == current:
            break
        current = current.parent
    return origin


def find_config_files(start: Optional[Path] = None) -> Tuple[Optional[Path], Optional[Path], Path]:
    """查找用户配置和项目配置

    Returns:
        Tuple[Optional[Path], Optional[Path], Path]: (用户配置路径, 项目配置路径, 工作区目录)
    """
    user_config_path: Optional[Path] = get_user_config_dir() / CONFIG_FILE
    if not user_config_path.is_file():
        user_config_path = None

    workspace_dir = resolve_workspace_dir(start)
    project_config_path: Optional[Path] = workspace_dir / TOOLCHAT_DIR / CONFIG_FILE
    if not project_config_path.is_file() or project_config_path == user_config_path:
        project_config_path = None

    return user_config_path, project_config_path, workspace_dir


def load_config_from_file(config_path: Path) -> Dict[str, Any]:
    """从 YAML 文件加载配置

    Raises:
        FileNotFoundError: 文件不存在
        yaml.YAMLError: YAML 解析失败
    """
    if not config_path.exists():
        raise FileNotFoundError(f"配置文件不存在: {config_path}")
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise yaml.YAMLError(f"配置文件顶层必须是映射: {config_path}")
    return data


def build_config(
    config_data: Dict[str, Any],
    workspace_dir: Path,
    config_file_path: Optional[Path] = None,
    source: str = "default",
) -> Config:
    """把配置字典解析为 Config

    Raises:
        ValidationError: 配置结构非法
    """
    data = {k: v for k, v in config_data.items() if k != "meta"}
    data["meta"] = ConfigMeta(
        workspace_dir=workspace_dir,
        config_file_path=config_file_path,
        source=source,
    )
    return Config.model_validate(data)


class ConfigManager:
    """全局配置管理器单例

    首次访问时懒加载配置
    """

    _instance: Optional["ConfigManager"] = None

    def __init__(self, start_dir: Optional[Path] = None):
        self.start_dir = start_dir
        self.config: Optional[Config] = None

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    def _load_config(self) -> Config:
        """加载并合并配置

        用户配置作为基础，项目配置覆盖其上。任一文件读取或解析失败都只记录警告，
        最终退回默认配置
        """
        user_config_path, project_config_path, workspace_dir = find_config_files(self.start_dir)

        config_data: Dict[str, Any] = {}
        config_file_path: Optional[Path] = None
        source = "default"

        if user_config_path:
            try:
                config_data = load_config_from_file(user_config_path)
                config_file_path, source = user_config_path, "user"
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"加载用户配置文件失败: {e}")

        if project_config_path:
            try:
                project_data = load_config_from_file(project_config_path)
                config_data = _deep_merge(config_data, project_data)
                config_file_path, source = project_config_path, "project"
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"加载项目配置文件失败: {e}")

        if config_data:
            try:
                config = build_config(config_data, workspace_dir, config_file_path, source)
                logger.debug(f"已加载配置: source={source}, path={config_file_path}")
                return config
            except ValidationError as e:
                logger.warning(f"解析配置失败，使用默认配置: {e}")

        return build_config({}, workspace_dir)

    def load(self) -> Config:
        """显式加载配置"""
        self.config = self._load_config()
        return self.config

    def get_config(self) -> Config:
        """获取配置，未加载时自动加载"""
        if self.config is None:
            self.load()
        return self.config
