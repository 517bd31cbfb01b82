"""
Common — コマンド結果とエラー種別

想定内の結果（重複、未知の ID、在庫不足、バスの一時的な失敗）は
例外ではなく CommandResult で返す。
例外を送出するのは起動時のバス接続失敗だけ（続行できないため）。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    DUPLICATE_EVENT = "DUPLICATE_EVENT"
    UNKNOWN_ORDER = "UNKNOWN_ORDER"
    TERMINAL_STATE_VIOLATION = "TERMINAL_STATE_VIOLATION"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    NOT_FOUND = "NOT_FOUND"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    BUS_UNAVAILABLE = "BUS_UNAVAILABLE"


@dataclass(frozen=True)
class CommandResult:
    """
    コマンドの結果。

    `changed` は成功したが状態を変更しなかった場合に False になる。
    例: すでに有効な予約を冪等に繰り返した場合。
    """

    success: bool
    value: Any = None
    error: ErrorKind | None = None
    reason: str = ""
    changed: bool = True

    @classmethod
    def ok(cls, value: Any = None, reason: str = "", changed: bool = True) -> "CommandResult":
        return cls(success=True, value=value, reason=reason, changed=changed)

    @classmethod
    def fail(cls, error: ErrorKind, reason: str) -> "CommandResult":
        return cls(success=False, error=error, reason=reason, changed=False)

    def to_dict(self) -> dict:
        result: dict = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error.value
        if self.reason:
            result["reason"] = self.reason
        return result


class BusConnectionFailure(Exception):
    """起動時にメッセージバスへ接続できなかった"""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Cannot connect to message bus at {url}")
