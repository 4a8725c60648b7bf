"""进程内状态（pending edits）与 append-only side log。"""

from edit_bridge.state.pending import PendingEditStore
from edit_bridge.state.side_log import SideLog

__all__ = ["PendingEditStore", "SideLog"]
