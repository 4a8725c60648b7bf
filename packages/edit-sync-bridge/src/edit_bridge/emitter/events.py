"""
host plugin runtime 生命周期事件的 schema（只声明 bridge 用到的字段）。

说明：
- 未知字段一律忽略（runtime 会随版本增加字段）；
- wire key 使用 runtime 的 camelCase，Python 侧使用 snake_case（alias）。
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

MESSAGE_PART_UPDATED = "message.part.updated"
PERMISSION_ASKED = "permission.asked"
PERMISSION_REPLIED = "permission.replied"

TOOL_EDIT = "edit"
TOOL_WRITE = "write"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
REPLY_ONCE = "once"


class _RuntimeModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LifecycleEvent(_RuntimeModel):
    """事件信封：判别字段 + properties。"""

    type: str
    properties: Dict[str, Any] = Field(default_factory=dict)


class ToolInput(_RuntimeModel):
    """edit/write 工具的输入。"""

    file_path: Optional[str] = Field(default=None, alias="filePath")
    content: Optional[str] = None
    old_string: Optional[str] = Field(default=None, alias="oldString")
    new_string: Optional[str] = Field(default=None, alias="newString")
    replace_all: bool = Field(default=False, alias="replaceAll")


class ToolState(_RuntimeModel):
    """工具执行状态（pending/running/completed/error）。"""

    status: str
    input: ToolInput = Field(default_factory=ToolInput)


class MessagePart(_RuntimeModel):
    """消息片段；只有 `type == "tool"` 的片段与 bridge 相关。"""

    id: Optional[str] = None
    type: str
    tool: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    state: Optional[ToolState] = None


class MessagePartUpdated(_RuntimeModel):
    """`message.part.updated` 的 properties。"""

    part: MessagePart


class PermissionMetadata(_RuntimeModel):
    """权限请求携带的元数据（文件路径与 unified diff）。"""

    filepath: Optional[str] = None
    diff: Optional[str] = None


class PermissionAsked(_RuntimeModel):
    """`permission.asked` 的 properties。"""

    id: str
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    metadata: PermissionMetadata = Field(default_factory=PermissionMetadata)


class PermissionReplied(_RuntimeModel):
    """`permission.replied` 的 properties（reply 为 `once` 时触发一次性应用）。"""

    request_id: str = Field(alias="requestID")
    reply: str
    session_id: Optional[str] = Field(default=None, alias="sessionID")
