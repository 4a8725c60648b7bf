"""
Receiver 进程装配：JSON-RPC 连接 + BridgeAgent + TCP listener。

生命周期：
- listener 与连接读循环并行运行；
- 客户端关闭 stdin（连接 EOF）时关闭 listener 并返回。
"""

from __future__ import annotations

import asyncio
import logging

from edit_bridge.config.loader import BridgeConfig
from edit_bridge.receiver.agent import BridgeAgent
from edit_bridge.receiver.connection import JsonRpcConnection, LineWriter
from edit_bridge.transport.receiver import FileEditedReceiver

logger = logging.getLogger(__name__)


async def run_receiver(cfg: BridgeConfig, *, reader: asyncio.StreamReader, writer: LineWriter) -> None:
    """
    运行 Receiver 直到客户端连接关闭。

    参数：
    - cfg：启动时加载的配置
    - reader/writer：到编辑器客户端的字节流（生产环境为 stdin/stdout）
    """

    connection = JsonRpcConnection(reader=reader, writer=writer)
    agent = BridgeAgent(client=connection)
    connection.bind(agent)

    listener = FileEditedReceiver.from_config(cfg, on_fact=agent.apply_fact)
    try:
        await listener.start()
    except OSError as e:
        # 端口被占用时仍提供会话协议面，只是收不到编辑事实
        logger.error("TCP server error: %s", e)
    try:
        await connection.run()
    finally:
        await listener.close()
        await connection.wait_idle()
