"""
模型后端基类定义模块。

本模块定义了与大语言模型交互的核心抽象接口：
- ProviderMode     : 后端选择模式（显式主后端 / 显式备用后端 / 自动回退）
- AttachmentPolicy : 待发送附件的清除时机
- LLMResponse      : 模型的统一响应格式
- LLMProvider      : 抽象基类，所有模型后端必须实现的接口

架构角色：
  操作者输入 → ProviderGateway.complete() → LLMProvider.chat() → 模型 API → LLMResponse

类比 Java：
  - LLMProvider 相当于一个 interface
  - LLMResponse 相当于一个不可变的 DTO
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderMode(str, Enum):
    """
    后端选择模式，进程内只有一个当前值，由操作者通过 /provider 切换。

    - PRIMARY:   explicit:primary，只调用主后端，失败直接抛出
    - SECONDARY: explicit:secondary，只调用备用后端，失败直接抛出
    - AUTO:      automatic，先主后备
    """
    PRIMARY = "primary"
    SECONDARY = "secondary"
    AUTO = "auto"


class AttachmentPolicy(str, Enum):
    """
    待发送附件（PendingAttachment）的清除时机。

    - CLEAR_ALWAYS:     一次逻辑请求开始时就取出附件，无论成败都不会再被重发
    - CLEAR_ON_SUCCESS: 只有请求成功后才清除，失败时附件保留到下一次请求
    """
    CLEAR_ALWAYS = "clear_always"
    CLEAR_ON_SUCCESS = "clear_on_success"


@dataclass
class LLMResponse:
    """
    模型的统一响应数据结构。

    属性：
        content: 模型返回的文本内容
        finish_reason: 结束原因（"stop"=正常结束, "error"=出错）
        usage: token 用量统计
    """
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        """后端把异常包装成了错误响应时为 True。"""
        return self.finish_reason == "error"


class LLMProvider(ABC):
    """
    模型后端抽象基类。

    当前项目中的实现类是 LiteLLMProvider（在 litellm_provider.py 中）；
    测试里用脚本化的假后端继承此类。

    属性：
        name: 后端名称（对应配置中的 providers.<name>）
        api_key: API 密钥
        api_base: API 基础 URL（用于自定义端点或代理）
    """

    def __init__(self, name: str, api_key: str | None = None, api_base: str | None = None):
        self.name = name
        self.api_key = api_key
        self.api_base = api_base

    @property
    def available(self) -> bool:
        """是否配置了凭据。网关在构建时读取一次。"""
        return bool(self.api_key)

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        发送对话补全请求。

        参数：
            messages: 已经映射为该后端角色词汇的消息列表
            model: 模型标识符，为空则使用默认模型
            max_tokens: 响应的最大 token 数
            temperature: 采样温度

        返回：
            LLMResponse
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """获取该后端的默认模型名称。"""
        pass
