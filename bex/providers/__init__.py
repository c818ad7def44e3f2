"""模型后端抽象模块。"""

from bex.providers.base import AttachmentPolicy, LLMProvider, LLMResponse, ProviderMode
from bex.providers.litellm_provider import LiteLLMProvider

__all__ = ["AttachmentPolicy", "LLMProvider", "LLMResponse", "LiteLLMProvider", "ProviderMode"]
