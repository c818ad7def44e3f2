"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 bex 的完整配置结构。
所有配置项都有默认值，用户只需在配置文件中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── agents        - 任务循环与会话参数（最大步数、完成标记、命令前缀、记忆文件等）
├── providers     - 模型后端配置（API Key、API Base、模型名）
├── gateway       - 后端选择策略（主/备后端、当前模式、附件清除策略）
├── tools         - 能力配置（远程工具服务器、Shell、浏览器、网页抓取）
└── daemon        - 守护进程与看门狗参数

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 中的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from bex.providers.base import AttachmentPolicy, ProviderMode


# ==============================================================================
# Agent 配置
# ==============================================================================


class AgentDefaults(BaseModel):
    """
    Agent 默认配置。

    - max_steps: /task 自主循环的步数上限，类似于递归深度限制
    - completion_token: 模型输出该标记（忽略大小写和首尾空白）即视为任务完成
    - memory_file: 会话快照文件，相对路径基于当前工作目录
    """
    max_steps: int = 20  # 单次 /task 允许的最大步数
    completion_token: str = "/done"  # 任务完成标记
    command_prefix: str = "/"  # 命令前缀
    memory_file: str = "bex-memory.json"  # 会话快照文件名（每次模型回复后整体覆盖）
    project_context_file: str = "GEMINI.md"  # 工作目录下的项目上下文文件，存在时拼进系统提示词
    max_tokens: int = 8192  # 单次模型调用的最大输出 token 数
    temperature: float = 0.7  # 生成温度


class AgentsConfig(BaseModel):
    """Agent 配置容器。"""
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


# ==============================================================================
# 模型后端配置
# ==============================================================================


class ProviderConfig(BaseModel):
    """
    单个模型后端的配置。

    api_key 为空表示该后端不可用（可用性在构建网关时计算一次，不会逐次重查）。
    model 为空时使用 registry 中该后端的默认模型。
    """
    api_key: str = ""  # API 密钥
    api_base: str | None = None  # 自定义 API 基础 URL（代理或私有部署）
    model: str = ""  # 模型名，如 "gemini-2.5-flash-lite"
    extra_headers: dict[str, str] | None = None  # 额外请求头


class ProvidersConfig(BaseModel):
    """
    所有模型后端的聚合配置。

    - gemini: Google Gemini（默认主后端，支持图片输入）
    - deepseek: DeepSeek（默认备用后端）
    - openai: OpenAI（可作为主/备后端之一）
    """
    gemini: ProviderConfig = Field(default_factory=ProviderConfig)
    deepseek: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)


class GatewayConfig(BaseModel):
    """
    后端选择策略配置。

    mode 取值：
    - primary / secondary: 显式使用某个后端，失败不回退
    - auto: 先调主后端，失败后同一请求内改调备用后端
    """
    primary: str = "gemini"  # 主后端名称（对应 providers 下的字段名）
    secondary: str = "deepseek"  # 备用后端名称
    mode: ProviderMode = ProviderMode.AUTO  # 启动时的后端模式
    attachment_policy: AttachmentPolicy = AttachmentPolicy.CLEAR_ALWAYS  # 待发送附件的清除时机


# ==============================================================================
# 工具 / 能力配置
# ==============================================================================


class MCPConfig(BaseModel):
    """远程工具服务器配置。"""
    servers: dict[str, str] = Field(default_factory=dict)  # 启动时预注册的服务器 {label: url}
    local_url: str = "http://localhost:4000"  # 本地文件工具服务器地址
    autoconnect: bool = True  # 启动时探测本地服务器，可达则注册为 "files"
    timeout: float = 30.0  # HTTP 请求超时（秒）


class ExecToolConfig(BaseModel):
    """Shell 命令执行配置。"""
    timeout: int = 60  # 命令执行超时时间（秒）


class BrowserConfig(BaseModel):
    """浏览器自动化配置（playwright）。"""
    headless: bool = False  # 是否无头模式启动
    timeout_ms: int = 30000  # 页面操作超时（毫秒）


class UrlFetchConfig(BaseModel):
    """/url 网页抓取配置。"""
    max_chars: int = 5000  # 写入会话的正文最大字符数
    timeout: float = 30.0  # 请求超时（秒）


class ToolsConfig(BaseModel):
    """工具总配置。"""
    mcp: MCPConfig = Field(default_factory=MCPConfig)
    exec: ExecToolConfig = Field(default_factory=ExecToolConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    url: UrlFetchConfig = Field(default_factory=UrlFetchConfig)


class DaemonConfig(BaseModel):
    """
    守护进程配置。

    看门狗每隔 watchdog_interval_s 秒检查一次心跳，
    心跳超过 stale_after_s 秒未更新时将其重置（只重置，不重启也不杀进程）。
    """
    watchdog_interval_s: float = 5.0
    stale_after_s: float = 15.0
    log_file: str = "worker.log"  # 位于 ~/.bex/logs/ 下


# ==============================================================================
# 根配置类
# ==============================================================================


class Config(BaseSettings):
    """
    bex 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: BEX_
    - 嵌套分隔符: __ (双下划线)
    - 示例: BEX_AGENTS__DEFAULTS__MAX_STEPS=5 可覆盖 agents.defaults.max_steps
    """
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)

    @property
    def memory_path(self) -> Path:
        """会话快照文件路径（将 ~ 展开为用户主目录）。"""
        return Path(self.agents.defaults.memory_file).expanduser()

    def get_provider(self, name: str) -> ProviderConfig | None:
        """按后端名称获取配置，未知名称返回 None。"""
        return getattr(self.providers, name, None)

    def is_available(self, name: str) -> bool:
        """后端是否可用：当前只取决于是否配置了 API Key。"""
        p = self.get_provider(name)
        return bool(p and p.api_key)

    model_config = ConfigDict(
        env_prefix="BEX_",
        env_nested_delimiter="__",
    )
