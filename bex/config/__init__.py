"""
配置模块 (config)
================
本模块是 bex 的配置系统入口，负责：
1. 定义配置数据模型（schema.py）—— 使用 Pydantic 定义所有配置项的结构和默认值
2. 分层加载/保存配置文件（loader.py）—— 工作目录、用户全局、安装目录三层，先出现者优先
"""

from bex.config.loader import get_config_path, load_config
from bex.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
