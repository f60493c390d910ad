# plugins/core_logging/__init__.py
import os
import yaml
import logging
import logging.config
from pathlib import Path

from backend.core.contracts import Container, HookManager

PLUGIN_DIR = Path(__file__).parent
VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def load_logging_config(config_path: Path = PLUGIN_DIR / "logging_config.yaml") -> dict:
    with open(config_path, 'r', encoding='utf-8') as f:
        logging_config = yaml.safe_load(f)

    env_log_level = os.getenv("LOG_LEVEL")
    if env_log_level and env_log_level.upper() in VALID_LEVELS:
        logging_config['root']['level'] = env_log_level.upper()

    return logging_config


def register_plugin(container: Container, hook_manager: HookManager):
    """这是 core_logging 插件的注册入口。"""
    logging.config.dictConfig(load_logging_config())

    logger = logging.getLogger(__name__)
    logger.info("Plugin [core_logging] registered.")
