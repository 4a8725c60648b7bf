"""
Loopback bridge：换行分帧 JSON over TCP（sender + receiver）。
"""

from edit_bridge.transport.framing import LineBuffer, split_lines
from edit_bridge.transport.receiver import ConnectionHandler, FileEditedReceiver
from edit_bridge.transport.sender import FileEditedSender, RetryPolicy, SendOutcome

__all__ = [
    "ConnectionHandler",
    "FileEditedReceiver",
    "FileEditedSender",
    "LineBuffer",
    "RetryPolicy",
    "SendOutcome",
    "split_lines",
]
