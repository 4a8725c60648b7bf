"""Emitter 侧：把 host runtime 的生命周期事件转换为 EditFact 并发送。"""

from edit_bridge.emitter.handler import EditEventHandler, FactSender
from edit_bridge.emitter.runner import pump_events

__all__ = ["EditEventHandler", "FactSender", "pump_events"]
