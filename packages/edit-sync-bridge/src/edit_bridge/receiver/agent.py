"""
BridgeAgent：Receiver 进程暴露给编辑器客户端的最小会话协议面。

会话方法均为 stub（返回最小合法响应）；唯一有行为意义的是：
`session/new` 与 `session/load` 设置“当前活动会话”，
决定收到的 EditFact 能否写入编辑器（没有活动会话时丢弃并告警，不排队）。
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from edit_bridge.core.contracts import EditFact
from edit_bridge.receiver.connection import INVALID_PARAMS, METHOD_NOT_FOUND, RpcError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1
PROMPT_REPLY_TEXT = "please use opencode directly"


class ClientConnection(Protocol):
    """出站调用接口（`JsonRpcConnection` 满足）。"""

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        ...

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        ...


class BridgeAgent:
    """
    Receiver 侧 agent（单活动会话）。

    参数：
    - client：到编辑器客户端的连接（发起 `fs/write_text_file` 与 `session/update`）
    """

    def __init__(self, *, client: ClientConnection) -> None:
        self._client = client
        self._active_session_id: Optional[str] = None
        self._requests: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            "initialize": self.initialize,
            "authenticate": self.authenticate,
            "session/new": self.new_session,
            "session/load": self.load_session,
            "session/prompt": self.prompt,
            "session/set_mode": self.set_session_mode,
        }
        self._notifications: Dict[str, Callable[[Dict[str, Any]], Awaitable[None]]] = {
            "session/cancel": self.cancel,
        }

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active_session_id

    async def handle_request(self, method: str, params: Dict[str, Any]) -> Any:
        fn = self._requests.get(method)
        if fn is None:
            raise RpcError(METHOD_NOT_FOUND, f"method not found: {method}")
        return await fn(params)

    async def handle_notification(self, method: str, params: Dict[str, Any]) -> None:
        fn = self._notifications.get(method)
        if fn is None:
            logger.debug("Ignoring notification %s", method)
            return
        await fn(params)

    async def initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Client initialized with protocol v%s", params.get("protocolVersion"))
        return {"protocolVersion": PROTOCOL_VERSION, "agentCapabilities": {"loadSession": True}}

    async def new_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        session_id = str(uuid.uuid4())
        self._active_session_id = session_id
        logger.info("New session created: %s in %s", session_id, params.get("cwd"))
        return {"sessionId": session_id, "configOptions": []}

    async def authenticate(self, params: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Authentication request received for method: %s", params.get("methodId"))
        return {}

    async def prompt(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """prompt 不由本 agent 处理：回一段提示文本后结束本轮。"""

        session_id = params.get("sessionId")
        logger.info("Prompt received for session %s", session_id)
        await self._client.notify(
            "session/update",
            {
                "sessionId": session_id,
                "update": {
                    "sessionUpdate": "agent_message_chunk",
                    "content": {"type": "text", "text": PROMPT_REPLY_TEXT},
                },
            },
        )
        return {"stopReason": "end_turn"}

    async def cancel(self, params: Dict[str, Any]) -> None:
        logger.info("Cancel requested for session %s", params.get("sessionId"))

    async def set_session_mode(self, params: Dict[str, Any]) -> Dict[str, Any]:
        logger.info("Session %s switched to %s mode", params.get("sessionId"), params.get("modeId"))
        return {}

    async def load_session(self, params: Dict[str, Any]) -> Dict[str, Any]:
        session_id = params.get("sessionId")
        if not isinstance(session_id, str) or not session_id:
            raise RpcError(INVALID_PARAMS, "sessionId is required")
        self._active_session_id = session_id
        logger.info("Loaded session %s from %s", session_id, params.get("cwd"))
        return {"configOptions": []}

    async def apply_fact(self, fact: EditFact) -> bool:
        """
        把 EditFact 写入编辑器中当前活动会话（`fs/write_text_file`）。

        返回：
        - True：已写入
        - False：没有活动会话，事实被丢弃（告警）
        """

        session_id = self._active_session_id
        if not session_id:
            logger.warning("No active session; skipping writeTextFile for %s", fact.file_path)
            return False
        await self._client.request(
            "fs/write_text_file",
            {"sessionId": session_id, "path": fact.file_path, "content": fact.content_new},
        )
        return True
