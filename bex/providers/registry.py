"""
模型后端注册表 —— 所有后端元数据的唯一真相来源（Single Source of Truth）。

采用"数据驱动"的设计：各后端的差异（环境变量名、LiteLLM 前缀、默认模型、
角色词汇映射、是否支持图片输入）集中在 PROVIDERS 元组中声明，
网关和 LiteLLMProvider 的逻辑完全通用，不写 if provider == "gemini" 这类分支。

添加新后端只需两步：
  1. 在下方 PROVIDERS 元组中新增一条 ProviderSpec
  2. 在 config/schema.py 的 ProvidersConfig 中新增一个字段
"""

from __future__ import annotations

from dataclasses import dataclass, field

# 会话内部角色 → OpenAI 兼容协议角色。system 轮次统一映射为 user，
# 内容前加 "SYSTEM INFO: " 标记（见 ConversationStore.to_messages）。
OPENAI_ROLE_MAP: dict[str, str] = {
    "user": "user",
    "model": "assistant",
    "system": "user",
}


@dataclass(frozen=True)
class ProviderSpec:
    """
    单个模型后端的元数据规格定义。

    【身份标识】
        name: 配置字段名（如 "gemini"），对应 providers 下的 key
        aliases: 操作者在 /provider 中可用的别名（如 "google"）
        env_keys: 凭据回退用的环境变量名，按顺序取第一个非空值
        display_name: 在 status 中显示的名称

    【模型】
        litellm_prefix: LiteLLM 路由前缀（如 "gemini" → "gemini/{model}"）
        skip_prefixes: 模型名已有这些前缀时不再添加
        default_model: 配置未指定 model 时使用的模型

    【协议差异】
        role_map: 会话角色到该后端协议角色的映射
        supports_vision: 是否接受图片输入；不支持时附件不会随请求发出
    """

    name: str
    env_keys: tuple[str, ...]
    display_name: str = ""
    aliases: tuple[str, ...] = ()

    litellm_prefix: str = ""
    skip_prefixes: tuple[str, ...] = ()
    default_model: str = ""

    role_map: dict[str, str] = field(default_factory=lambda: dict(OPENAI_ROLE_MAP))
    supports_vision: bool = False

    @property
    def label(self) -> str:
        """获取显示标签，优先使用 display_name，否则将 name 首字母大写。"""
        return self.display_name or self.name.title()

    def resolve_model(self, model: str) -> str:
        """为模型名加上 LiteLLM 前缀（已有前缀时原样返回）。"""
        if self.litellm_prefix and not any(model.startswith(s) for s in self.skip_prefixes):
            return f"{self.litellm_prefix}/{model}"
        return model


# ---------------------------------------------------------------------------
# PROVIDERS —— 后端注册表。
# ---------------------------------------------------------------------------

PROVIDERS: tuple[ProviderSpec, ...] = (

    # Gemini（Google）：默认主后端，支持图片输入
    ProviderSpec(
        name="gemini",
        env_keys=("GEMINI_API_KEY", "GOOGLE_API_KEY"),
        display_name="Gemini",
        aliases=("google",),
        litellm_prefix="gemini",            # gemini-2.5-flash-lite → gemini/gemini-2.5-flash-lite
        skip_prefixes=("gemini/",),
        default_model="gemini-2.5-flash-lite",
        supports_vision=True,
    ),

    # DeepSeek：默认备用后端，只接受文本
    ProviderSpec(
        name="deepseek",
        env_keys=("DEEPSEEK_API_KEY",),
        display_name="DeepSeek",
        litellm_prefix="deepseek",          # deepseek-chat → deepseek/deepseek-chat
        skip_prefixes=("deepseek/",),
        default_model="deepseek-chat",
        supports_vision=False,
    ),

    # OpenAI：LiteLLM 原生识别 gpt-* 模型名，无需前缀
    ProviderSpec(
        name="openai",
        env_keys=("OPENAI_API_KEY",),
        display_name="OpenAI",
        aliases=("gpt",),
        litellm_prefix="",
        skip_prefixes=(),
        default_model="gpt-4o-mini",
        supports_vision=True,
    ),
)


def find_by_name(name: str) -> ProviderSpec | None:
    """
    根据配置字段名或别名查找 ProviderSpec（大小写不敏感）。

    参数：
        name: 配置字段名或别名（如 "gemini"、"google"）

    返回：
        匹配的 ProviderSpec，如果没有找到则返回 None
    """
    name = name.lower()
    for spec in PROVIDERS:
        if spec.name == name or name in spec.aliases:
            return spec
    return None
