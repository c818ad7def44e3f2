"""
模型网关 —— 主/备两个后端之上的统一调用入口。

调用契约（由 session.mode 决定）：
- PRIMARY / SECONDARY: 只调用对应后端，失败原样抛出 ProviderError，不回退
- AUTO: 先调主后端；任何失败（错误响应或异常）都在同一次逻辑请求内
  改调备用后端；备用后端也失败时抛出备用后端的错误

成功的调用恰好追加一条 model 轮次（ConversationStore 随即落盘）。

待发送附件（PendingAttachment）的处理由 AttachmentPolicy 决定：
- CLEAR_ALWAYS（默认）: 请求开始时取出附件，主/备两次尝试都携带它，
  之后无论成败都不会再次发送
- CLEAR_ON_SUCCESS: 只有成功后才清除，失败时保留到下一次请求

数据流：
  Runtime / AgentLoop → ProviderGateway.complete() → LLMProvider.chat() → LLMResponse
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger

from bex.agent.context import ContextBuilder
from bex.errors import ErrorPolicy, ProviderError, Subsystem, policy_for
from bex.providers.base import AttachmentPolicy, LLMProvider, ProviderMode
from bex.providers.litellm_provider import LiteLLMProvider
from bex.providers.registry import OPENAI_ROLE_MAP, ProviderSpec, find_by_name
from bex.session.manager import Turn

if TYPE_CHECKING:
    from bex.agent.state import AgentSession, PendingAttachment
    from bex.config.schema import Config


class ProviderGateway:
    """
    主/备后端网关。

    属性:
        primary: 主后端
        secondary: 备用后端
        context: 系统提示词构建器
        attachment_policy: 附件清除时机
    """

    def __init__(
        self,
        primary: LLMProvider,
        secondary: LLMProvider,
        context: ContextBuilder | None = None,
        attachment_policy: AttachmentPolicy = AttachmentPolicy.CLEAR_ALWAYS,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        self.primary = primary
        self.secondary = secondary
        self.context = context or ContextBuilder()
        self.attachment_policy = attachment_policy
        self.max_tokens = max_tokens
        self.temperature = temperature
        # 可用性只在构建时计算一次
        self._available = {p.name: p.available for p in (primary, secondary)}

    @classmethod
    def from_config(cls, config: Config, context: ContextBuilder | None = None) -> "ProviderGateway":
        """根据配置构建两个 LiteLLMProvider。"""
        return cls(
            primary=_make_provider(config, config.gateway.primary),
            secondary=_make_provider(config, config.gateway.secondary),
            context=context,
            attachment_policy=config.gateway.attachment_policy,
            max_tokens=config.agents.defaults.max_tokens,
            temperature=config.agents.defaults.temperature,
        )

    def is_available(self, provider: LLMProvider) -> bool:
        return self._available.get(provider.name, False)

    @property
    def any_available(self) -> bool:
        return any(self._available.values())

    def describe(self) -> list[tuple[str, str, bool]]:
        """返回 [(角色, 后端名, 是否可用)]，供 /status 使用。"""
        return [
            ("primary", _label(self.primary), self.is_available(self.primary)),
            ("secondary", _label(self.secondary), self.is_available(self.secondary)),
        ]

    def resolve_mode(self, name: str) -> ProviderMode | None:
        """
        把操作者输入的名字解析为 ProviderMode。

        除了 primary / secondary / auto，还接受后端名和别名
        （如 "google" 对应主后端 gemini）。
        """
        name = name.lower()
        try:
            return ProviderMode(name)
        except ValueError:
            pass
        spec = find_by_name(name)
        if spec is None:
            return None
        if spec.name == self.primary.name:
            return ProviderMode.PRIMARY
        if spec.name == self.secondary.name:
            return ProviderMode.SECONDARY
        return None

    async def complete(self, session: AgentSession, prompt: str | None = None) -> str:
        """
        执行一次逻辑请求。

        参数:
            session: 会话上下文（读取 mode、对话历史、待发送附件）
            prompt: 一次性的用户文本，只发送不记录（用于启动问候）

        返回:
            模型回复文本（已作为 model 轮次追加到对话历史）

        异常:
            ProviderError: 被调用的后端全部失败
        """
        candidates = self._candidates(session.mode)

        attachment = session.pending_attachment
        if attachment is not None and self.attachment_policy == AttachmentPolicy.CLEAR_ALWAYS:
            session.pending_attachment = None

        *fallbacks, last = candidates
        for i, provider in enumerate(fallbacks):
            try:
                return await self._complete_with(provider, session, prompt, attachment)
            except ProviderError as e:
                logger.warning(f"Provider {provider.name} failed: {e}")
                session.reporter.warn(f"{_label(provider)} failed, trying {_label(candidates[i + 1])}...")

        # 最后一个候选的错误原样抛出
        return await self._complete_with(last, session, prompt, attachment)

    async def _complete_with(
        self,
        provider: LLMProvider,
        session: AgentSession,
        prompt: str | None,
        attachment: PendingAttachment | None,
    ) -> str:
        """调用单个后端；成功时追加 model 轮次并按策略清除附件。"""
        content = await self._attempt(provider, session, prompt, attachment)
        session.conversation.append(Turn.model(content))
        if self.attachment_policy == AttachmentPolicy.CLEAR_ON_SUCCESS and session.pending_attachment is attachment:
            session.pending_attachment = None
        return content

    def _candidates(self, mode: ProviderMode) -> list[LLMProvider]:
        if mode == ProviderMode.PRIMARY:
            return [self.primary]
        if mode == ProviderMode.SECONDARY:
            return [self.secondary]
        if policy_for(Subsystem.PROVIDER) == ErrorPolicy.FALLBACK:
            return [self.primary, self.secondary]
        return [self.primary]

    async def _attempt(
        self,
        provider: LLMProvider,
        session: AgentSession,
        prompt: str | None,
        attachment: PendingAttachment | None,
    ) -> str:
        """调用单个后端；任何失败都转换为 ProviderError。"""
        if not self.is_available(provider):
            raise ProviderError(provider.name, f"{_label(provider)} API key missing.")

        spec = find_by_name(provider.name)
        messages = self._build_messages(spec, session, prompt, attachment)

        try:
            response = await provider.chat(
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            raise ProviderError(provider.name, str(e)) from e

        if response.is_error:
            raise ProviderError(provider.name, response.content or "unknown error")
        return response.content or ""

    def _build_messages(
        self,
        spec: ProviderSpec | None,
        session: AgentSession,
        prompt: str | None,
        attachment: PendingAttachment | None,
    ) -> list[dict[str, Any]]:
        role_map = spec.role_map if spec else OPENAI_ROLE_MAP
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.context.build_system_prompt()}]
        messages.extend(session.conversation.to_messages(role_map))
        if prompt:
            messages.append({"role": "user", "content": prompt})

        if attachment is not None:
            if spec is not None and spec.supports_vision:
                _attach(messages, attachment)
            else:
                logger.warning(f"Provider {spec.name if spec else 'unknown'} does not accept images, sending text only")
        return messages


def _attach(messages: list[dict[str, Any]], attachment: PendingAttachment) -> None:
    """把附件加到最后一条 user 消息上（多模态格式：文本在前，图片在后）。"""
    for msg in reversed(messages):
        if msg["role"] == "user":
            text = msg["content"]
            msg["content"] = [{"type": "text", "text": text}, attachment.to_content_part()]
            return
    messages.append({"role": "user", "content": [attachment.to_content_part()]})


def _label(provider: LLMProvider) -> str:
    spec = find_by_name(provider.name)
    return spec.label if spec else provider.name


def _make_provider(config: Config, name: str) -> LiteLLMProvider:
    spec = find_by_name(name)
    if spec is None:
        raise ValueError(f"Unknown provider: {name}")
    p = config.get_provider(spec.name)
    return LiteLLMProvider(
        spec,
        api_key=p.api_key if p else None,
        api_base=p.api_base if p else None,
        default_model=p.model if p else None,
        extra_headers=p.extra_headers if p else None,
    )
