"""
自主任务循环模块 —— /task 的执行引擎。

状态机：
    START → STEP* → {DONE, ABORTED, MAX_STEPS_REACHED}

- START: 追加一条 user 轮次，内容是目标 + 操作约定（白名单命令清单、
  每轮只输出一条命令、完成时输出完成标记）
- STEP: 通过网关获取下一步动作（网关已把它作为 model 轮次追加），步数加一
    * 动作等于完成标记（忽略大小写和首尾空白）→ DONE
    * 动作以命令前缀开头 → 白名单内的命令交给 CommandRegistry 分发；
      白名单外的命令和执行失败都追加一条 system 轮次说明原因
    * 其他文本不执行
- 步数耗尽仍未完成 → MAX_STEPS_REACHED，静默结束，不作为错误抛出
- STEP 中模型调用失败 → 按错误策略表处理（默认 abort：立即 ABORTED）

步数和终止状态只属于单次调用；再次调用会新建 AgentTask，
但对话历史是同一个 ConversationStore。

【Java 开发者类比】
- AgentTask 类似于一个带状态字段的 DTO
- AgentLoop.run() 类似于一个有限状态机的 while 驱动循环
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from bex.errors import ErrorPolicy, ProviderError, Subsystem, policy_for
from bex.session.manager import Turn
from bex.utils.helpers import split_command, truncate_string

if TYPE_CHECKING:
    from bex.agent.commands.registry import CommandRegistry
    from bex.agent.state import AgentSession
    from bex.providers.gateway import ProviderGateway


class TaskState(str, Enum):
    """任务状态。RUNNING 之外的三个是终止状态。"""
    RUNNING = "running"
    DONE = "done"
    ABORTED = "aborted"
    MAX_STEPS_REACHED = "max_steps_reached"


@dataclass
class AgentTask:
    """
    单次 /task 调用的状态，不跨调用保存。

    属性:
        goal: 目标文本
        max_steps: 步数上限
        step: 已执行的步数（0..max_steps，只增不减）
        state: 当前状态
        error: ABORTED 时的错误信息
    """

    goal: str
    max_steps: int
    step: int = 0
    state: TaskState = TaskState.RUNNING
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.state != TaskState.RUNNING


class AgentLoop:
    """
    自主任务循环控制器。

    参数:
        gateway: 模型网关
        registry: 命令注册表（白名单从中计算）
        max_steps: 默认步数上限
        completion_token: 完成标记
        on_provider_error: 模型调用失败时的策略，默认取错误策略表中 agent_loop 的值
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        registry: CommandRegistry,
        max_steps: int = 20,
        completion_token: str = "/done",
        on_provider_error: ErrorPolicy | None = None,
    ):
        self.gateway = gateway
        self.registry = registry
        self.max_steps = max_steps
        self.completion_token = completion_token
        self.on_provider_error = on_provider_error or policy_for(Subsystem.AGENT_LOOP)

    @property
    def allowed(self) -> set[str]:
        """白名单命令名集合（不含前缀）。"""
        return {c.name for c in self.registry.unattended()}

    def build_goal_prompt(self, goal: str) -> str:
        """START 阶段的 user 轮次：目标 + 操作约定。"""
        prefix = self.registry.prefix
        commands = "\n".join(
            f"- {c.signature(prefix)}: {c.description}" for c in self.registry.unattended()
        )
        return (
            f"GOAL: {goal}\n\n"
            "You are an autonomous agent. Execute the task step-by-step.\n"
            f"AVAILABLE COMMANDS:\n{commands}\n"
            f"- {self.completion_token}: Task complete\n\n"
            "INSTRUCTIONS:\n"
            "1. Output ONE command at a time.\n"
            "2. Wait for the result (SYSTEM INFO).\n"
            f'3. If the goal is achieved, output "{self.completion_token}".\n'
            "4. Do not output markdown blocks for commands, just the command text.\n"
        )

    async def run(self, session: AgentSession, goal: str, max_steps: int | None = None) -> AgentTask:
        """
        执行一次自主任务。

        返回:
            终止状态的 AgentTask（本方法不因 MAX_STEPS_REACHED 或 ABORTED 抛异常）
        """
        task = AgentTask(goal=goal, max_steps=max_steps if max_steps is not None else self.max_steps)
        logger.info(f"Agent task started: {truncate_string(goal, 80)} (max {task.max_steps} steps)")
        session.reporter.info(f"Agent starting: {goal}")
        session.conversation.append(Turn.user(self.build_goal_prompt(goal)))

        while task.step < task.max_steps:
            await self._step(session, task)
            if task.finished:
                return task

        task.state = TaskState.MAX_STEPS_REACHED
        logger.info(f"Agent task reached max steps ({task.max_steps})")
        return task

    async def _step(self, session: AgentSession, task: AgentTask) -> None:
        task.step += 1
        session.touch()
        logger.debug(f"Agent step {task.step}/{task.max_steps}")

        try:
            action = (await self.gateway.complete(session)).strip()
        except ProviderError as e:
            if self.on_provider_error == ErrorPolicy.ABORT:
                task.state = TaskState.ABORTED
                task.error = str(e)
                logger.error(f"Agent task aborted at step {task.step}: {e}")
                session.reporter.error(f"Agent aborted: {e}")
                return
            logger.warning(f"Provider error at step {task.step}, continuing: {e}")
            session.conversation.append(Turn.system(f"Provider error: {e}"))
            return

        session.reporter.info(f"Agent › {action}")

        if action.lower() == self.completion_token.lower():
            task.state = TaskState.DONE
            logger.info(f"Agent task done after {task.step} steps")
            session.reporter.success("Agent completed the task.")
            return

        parsed = split_command(action, self.registry.prefix)
        if parsed is None:
            return

        name = parsed[0]
        if name not in self.allowed:
            session.conversation.append(Turn.system(f"Unknown command: {self.registry.prefix}{name}"))
            return

        result = await self.registry.dispatch(action, session)
        if not result.ok:
            session.conversation.append(
                Turn.system(f"Command {self.registry.prefix}{name} failed: {result.message}")
            )
