"""Agent 核心模块：会话上下文、命令系统、自主任务循环和运行时协调器。"""
