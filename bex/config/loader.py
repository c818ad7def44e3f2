"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 bex 配置文件的分层加载、保存和格式转换：
- 配置文件使用 camelCase（驼峰命名），Python 内部使用 snake_case（下划线命名）
- 加载时自动将 camelCase → snake_case，保存时自动将 snake_case → camelCase

分层加载（凭据解析顺序）：
    1. 工作目录:   ./.bex.json
    2. 用户全局:   ~/.bex/config.json
    3. 安装目录:   <bex 包目录>/config.json

    每一层只要存在都会被读取，按"同一个键以最先出现的层为准"深度合并。
    文件层全部合并完后，仍未配置 api_key 的后端再回退到环境变量
    （如 GEMINI_API_KEY / GOOGLE_API_KEY / DEEPSEEK_API_KEY）。
"""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger

from bex.config.schema import Config

# 这些键下面是用户自定义的名字，不做命名风格转换
_VERBATIM_KEYS = {"servers", "extraHeaders"}


def get_config_path() -> Path:
    """获取用户全局配置文件路径: ~/.bex/config.json"""
    return Path.home() / ".bex" / "config.json"


def get_config_layers() -> list[Path]:
    """按优先级从高到低返回所有配置层的路径（不保证文件存在）。"""
    return [
        Path.cwd() / ".bex.json",
        get_config_path(),
        Path(__file__).resolve().parent.parent / "config.json",
    ]


def load_config(layers: list[Path] | None = None, environ: dict[str, str] | None = None) -> Config:
    """
    分层加载配置。

    加载流程：
    1. 依次读取每个存在的配置层（JSON），解析失败的层记录警告后跳过
    2. 将 camelCase 键名转换为 snake_case
    3. 按"先出现者优先"深度合并
    4. 使用 Pydantic 的 model_validate 进行类型验证
    5. 对仍然缺少 api_key 的后端应用环境变量回退

    参数:
        layers: 自定义配置层列表（测试用），为 None 时使用 get_config_layers()
        environ: 自定义环境变量映射（测试用），为 None 时使用 os.environ

    返回:
        Config 配置对象实例
    """
    merged: dict[str, Any] = {}
    for path in layers if layers is not None else get_config_layers():
        if not path.exists():
            continue
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load config layer {path}: {e}")
            continue
        logger.debug(f"Loaded config layer {path}")
        merged = merge_first_wins(merged, convert_keys(data))

    try:
        config = Config.model_validate(merged)
    except ValueError as e:
        # 配置内容不合法时降级使用默认配置，而非直接报错退出
        logger.warning(f"Invalid configuration, using defaults: {e}")
        config = Config()

    apply_env_credentials(config, environ if environ is not None else dict(os.environ))
    return config


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    将配置对象保存为 JSON 文件（camelCase 键名）。

    参数:
        config: 要保存的配置对象
        config_path: 可选的保存路径。为 None 时使用用户全局路径。
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump(mode="json"))

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def apply_env_credentials(config: Config, environ: dict[str, str]) -> None:
    """
    环境变量凭据回退：仅填充文件层未配置 api_key 的后端。

    每个后端可对应多个环境变量名（见 registry 中 ProviderSpec.env_keys），
    按顺序取第一个非空值。
    """
    from bex.providers.registry import PROVIDERS

    for spec in PROVIDERS:
        p = config.get_provider(spec.name)
        if p is None or p.api_key:
            continue
        for key in spec.env_keys:
            if environ.get(key):
                p.api_key = environ[key]
                logger.debug(f"Using {key} for provider {spec.name}")
                break


def merge_first_wins(base: dict[str, Any], layer: dict[str, Any]) -> dict[str, Any]:
    """
    深度合并两个配置字典，base 中已有的键优先。

    例: merge_first_wins({"a": {"x": 1}}, {"a": {"x": 2, "y": 3}}) → {"a": {"x": 1, "y": 3}}
    """
    result = dict(base)
    for key, value in layer.items():
        if key not in result:
            result[key] = value
        elif isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_first_wins(result[key], value)
    return result


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"maxSteps": 20} → {"max_steps": 20}
    用户自定义的映射（服务器 label、请求头名）只转换外层键，内容原样保留。
    """
    if isinstance(data, dict):
        return {
            camel_to_snake(k): v if k in _VERBATIM_KEYS else convert_keys(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地将字典中所有 snake_case 键名转换为 camelCase，用于保存配置。"""
    if isinstance(data, dict):
        return {
            snake_to_camel(k): v if snake_to_camel(k) in _VERBATIM_KEYS else convert_to_camel(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """
    将 camelCase 字符串转换为 snake_case。
    例: "maxSteps" → "max_steps", "apiBase" → "api_base"
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """
    将 snake_case 字符串转换为 camelCase。
    例: "max_steps" → "maxSteps"
    """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
