import os
from pathlib import Path
from typing import Optional, Union

from loguru import logger as _logger

from toolchat.core.constants import (
    LOG_COMPRESSION,
    LOG_DIR,
    LOG_ENCODING,
    LOG_FILE,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_RETENTION,
    LOG_ROTATION,
    TOOLCHAT_DIR,
)


def _env_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: str) -> str:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip()


_LOGGER_CONFIGURED = False


def init_logger(
    *,
    level: Optional[str] = None,
    log_dir: Optional[Union[str, Path]] = None,
    log_file: Optional[str] = None,
    rotation: Optional[str] = None,
    retention: Optional[str] = None,
    compression: Optional[str] = None,
    enqueue: Optional[bool] = None,
    serialize: Optional[bool] = None,
    fmt: Optional[str] = None,
    force: bool = False,
) -> Path:
    """初始化文件日志

    参数未显式传入时从 TOOLCHAT_LOG_* 环境变量读取，再退回到默认值

    Returns:
        Path: 日志文件路径
    """
    global _LOGGER_CONFIGURED

    log_dir = log_dir or _env_str("TOOLCHAT_LOG_DIR", f"{TOOLCHAT_DIR}/{LOG_DIR}")
    log_file = log_file or _env_str("TOOLCHAT_LOG_FILE", LOG_FILE)
    log_filepath = Path(log_dir).expanduser().resolve() / log_file

    if _LOGGER_CONFIGURED and not force:
        _logger.debug("logger 已初始化，跳过")
        return log_filepath

    level = (level or _env_str("TOOLCHAT_LOG_LEVEL", LOG_LEVEL)).upper()
    rotation = rotation or _env_str("TOOLCHAT_LOG_ROTATION", LOG_ROTATION)
    retention = retention or _env_str("TOOLCHAT_LOG_RETENTION", LOG_RETENTION)
    compression = compression or _env_str("TOOLCHAT_LOG_COMPRESSION", LOG_COMPRESSION)
    enqueue = enqueue if enqueue is not None else _env_bool("TOOLCHAT_LOG_ENQUEUE", True)
    serialize = serialize if serialize is not None else _env_bool("TOOLCHAT_LOG_SERIALIZE", False)

    _logger.remove()
    log_filepath.parent.mkdir(parents=True, exist_ok=True)
    _logger.add(
        log_filepath,
        level=level,
        format=fmt or LOG_FORMAT,
        rotation=rotation,
        retention=retention,
        compression=compression,
        enqueue=enqueue,
        serialize=serialize,
        backtrace=True,
        diagnose=False,
        encoding=LOG_ENCODING,
    )

    _LOGGER_CONFIGURED = True
    return log_filepath


# 绑定 logger 的 name 为 "toolchat"
logger = _logger.bind(name="toolchat")
