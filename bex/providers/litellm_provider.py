"""
LiteLLM 提供者实现模块 —— 多模型后端的统一调用层。

本模块是 LLMProvider 抽象基类的实现，通过 LiteLLM 开源库把
Gemini、DeepSeek、OpenAI 等后端统一为 OpenAI 兼容的调用格式。

核心设计：
  1. 模型名称解析：根据 registry.py 中的 ProviderSpec 自动添加 LiteLLM 前缀
     例如 "deepseek-chat" → "deepseek/deepseek-chat"
  2. 错误容错：调用失败时返回 finish_reason="error" 的响应而非抛出异常，
     由 ProviderGateway 统一判定失败并决定是否回退

数据流：
  ProviderGateway → LiteLLMProvider.chat() → LiteLLM.acompletion() → 模型 API
"""

from typing import Any

import litellm
from litellm import acompletion

from bex.providers.base import LLMProvider, LLMResponse
from bex.providers.registry import ProviderSpec


class LiteLLMProvider(LLMProvider):
    """
    基于 LiteLLM 的模型后端实现类。

    一个实例只对应一个后端（由 spec 决定），主/备两个后端是两个实例。

    构造参数：
        spec: 后端元数据
        api_key: API 密钥
        api_base: 自定义 API 基础 URL
        default_model: 默认模型名称，为空时使用 spec.default_model
        extra_headers: 额外的 HTTP 请求头
    """

    def __init__(
        self,
        spec: ProviderSpec,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str | None = None,
        extra_headers: dict[str, str] | None = None,
    ):
        super().__init__(spec.name, api_key, api_base)
        self.spec = spec
        self.default_model = default_model or spec.default_model
        self.extra_headers = extra_headers or {}

        # 禁用 LiteLLM 的调试日志输出（默认很啰嗦）
        litellm.suppress_debug_info = True
        # 自动丢弃后端不支持的参数
        litellm.drop_params = True

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
            messages: 已映射为 OpenAI 角色词汇的消息列表
            model: 模型标识符，为空则使用默认模型
            max_tokens: 响应的最大 token 数
            temperature: 采样温度

        返回：
            LLMResponse；调用失败时 finish_reason="error"，content 为错误描述
        """
        kwargs: dict[str, Any] = {
            "model": self.spec.resolve_model(model or self.default_model),
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        # 直接传 api_key 比仅依赖环境变量更可靠
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers

        try:
            response = await acompletion(**kwargs)
            return self._parse_response(response)
        except Exception as e:
            return LLMResponse(
                content=f"Error calling {self.spec.label}: {str(e)}",
                finish_reason="error",
            )

    def _parse_response(self, response: Any) -> LLMResponse:
        """将 LiteLLM 的原始响应解析为统一的 LLMResponse 格式。"""
        choice = response.choices[0]

        usage = {}
        if hasattr(response, "usage") and response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        """获取默认模型名称。"""
        return self.default_model
