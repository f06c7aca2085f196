from dataclasses import dataclass
from enum import Enum


class MessageKind(Enum):
    USER = "user"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    TOOL = "tool"
    DIFF = "diff"


@dataclass(frozen=True)
class Message:
    kind: MessageKind
    text: str
