"""
工具函数模块 - 提供 bex 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- get_data_path：获取数据存储路径（~/.bex）
- truncate_string：截断长文本
"""

from bex.utils.helpers import ensure_dir, get_data_path, truncate_string

__all__ = ["ensure_dir", "get_data_path", "truncate_string"]
