"""Receiver 侧：TCP listener + 编辑器会话协议面。"""

from edit_bridge.receiver.agent import BridgeAgent
from edit_bridge.receiver.connection import JsonRpcConnection, RpcError
from edit_bridge.receiver.service import run_receiver

__all__ = ["BridgeAgent", "JsonRpcConnection", "RpcError", "run_receiver"]
