"""
Pending Edit Store：`request_id -> PendingEdit`。

约束：
- 每个 request_id 至多一条 live 记录；`put` 为无条件 upsert（覆盖旧值）；
- `take` 为 read-and-remove；仅在 reply 为 `once` 时调用；
- 无过期/淘汰策略：未被 take 的记录存活到进程退出；
- 不加锁：单线程事件循环下，查找与修改之间不存在 await，天然原子。
"""

from __future__ import annotations

from typing import Dict, Optional

from edit_bridge.core.contracts import PendingEdit


class PendingEditStore:
    """等待一次性授权的编辑集合（进程内，重启即丢失）。"""

    def __init__(self) -> None:
        self._items: Dict[str, PendingEdit] = {}

    def put(self, request_id: str, file: str, content_new: str) -> PendingEdit:
        """
        写入（或覆盖）一条 pending edit。

        参数：
        - request_id：permission 请求 id
        - file：目标文件路径
        - content_new：补丁应用后的完整内容

        返回：
        - 新写入的 PendingEdit
        """

        pending = PendingEdit(request_id=str(request_id), file=file, content_new=content_new)
        self._items[pending.request_id] = pending
        return pending

    def take(self, request_id: str) -> Optional[PendingEdit]:
        """取出并删除一条 pending edit；不存在时返回 None。"""

        return self._items.pop(str(request_id), None)

    def peek(self, request_id: str) -> Optional[PendingEdit]:
        """只读查看（不删除）。"""

        return self._items.get(str(request_id))

    def __contains__(self, request_id: object) -> bool:
        return str(request_id) in self._items

    def __len__(self) -> int:
        return len(self._items)
