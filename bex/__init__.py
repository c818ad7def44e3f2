"""
bex - 终端里的自主 AI 助手

模块概述：
    本文件是 bex 包的入口文件（__init__.py），定义了包的元信息。
    bex 是一个运行在终端中的 AI CLI Agent，在操作者、多个大语言模型后端
    和本地/远程能力（文件、Shell、浏览器、远程工具服务器）之间充当中介。

    整个框架的核心功能包括：
    - 会话历史的有序存储与快照持久化
    - 多模型后端（Gemini / DeepSeek 等）的显式选择与自动故障转移
    - 斜杠命令注册表与分发器
    - 有界的自主任务循环（/task）
    - 远程工具服务器（MCP 风格 HTTP 协议）的发现与调用
    - 守护进程模式与看门狗心跳
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🧟"
