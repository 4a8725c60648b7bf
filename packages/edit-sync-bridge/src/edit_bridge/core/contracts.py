"""
核心契约（EditFact / PendingEdit / wire 帧）。

wire 形态（单行 JSON + `\n`）：
    {"type":"file.edited","properties":{"file":"<abs path>","contentNew":"<full content>"}}

参考文档：
- `help/01-wire-protocol.md`
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from edit_bridge.core.errors import FrameError

FILE_EDITED_TYPE = "file.edited"


class EditFact(BaseModel):
    """
    EditFact：某个文件“现在的完整内容”。

    字段：
    - file_path：目标文件路径（wire key 为 `file`）
    - content_new：完整的新内容（wire key 为 `contentNew`）

    约束：
    - 构造后不可变（frozen）；发送端原样序列化、接收端原样写入。
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    file_path: str = Field(alias="file", min_length=1)
    content_new: str = Field(alias="contentNew")

    def to_message(self) -> Dict[str, Any]:
        """返回 wire 消息 dict（`type` + `properties`）。"""

        return {"type": FILE_EDITED_TYPE, "properties": self.model_dump(by_alias=True)}

    def to_line(self) -> bytes:
        """序列化为单行 UTF-8 JSON（末尾带 `\\n`）。"""

        # json.dumps 会把内容里的换行转义为 `\n`，因此一条事实永远只占一行。
        return (json.dumps(self.to_message(), ensure_ascii=False) + "\n").encode("utf-8")


def decode_fact_line(line: str) -> Optional[EditFact]:
    """
    解析一行 wire 文本。

    返回：
    - EditFact：`type == "file.edited"` 且 properties 合法
    - None：合法 JSON，但 `type` 不是 `file.edited`（忽略）

    异常：
    - FrameError：JSON 非法、根节点不是 object、或 properties 校验失败
    """

    try:
        obj = json.loads(line)
    except json.JSONDecodeError as e:
        raise FrameError(f"invalid json: {e}") from e
    if not isinstance(obj, dict):
        raise FrameError("frame root must be an object", details={"root_type": type(obj).__name__})
    if obj.get("type") != FILE_EDITED_TYPE:
        return None
    try:
        return EditFact.model_validate(obj.get("properties"))
    except ValidationError as e:
        raise FrameError("invalid file.edited properties", details={"errors": e.errors()}) from e


@dataclass(frozen=True)
class PendingEdit:
    """等待一次性授权的编辑（由 `permission.asked` 计算得出）。"""

    request_id: str
    file: str
    content_new: str

    def to_fact(self) -> EditFact:
        """转换为可发送的 EditFact。"""

        return EditFact(file_path=self.file, content_new=self.content_new)

    def to_dict(self) -> Dict[str, Any]:
        """转成 JSONable dict（用于 side log）。"""

        return {"requestId": self.request_id, "file": self.file, "contentNew": self.content_new}
