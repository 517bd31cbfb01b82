"""
Common — インメモリ イベントストア

各サービスが集約に適用した事実を追記専用で記録する。
状態はプロセスが生きている間だけ保持し、ディスクには書かない。
バージョンは集約ごとに 1 から始まる。
"""

import threading
from datetime import datetime, timezone


class ConcurrencyError(Exception):
    """呼び出し側が読み込んだ後に集約が更新されていた"""

    def __init__(self, aggregate_id: str, expected: int, actual: int):
        self.aggregate_id = aggregate_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Aggregate {aggregate_id} is at version {actual}, expected {expected}"
        )


class EventStore:
    def __init__(self) -> None:
        self._events: list[dict] = []
        self._by_aggregate: dict[str, list[dict]] = {}
        self._lock = threading.Lock()

    def append_event(
        self,
        aggregate_id: str,
        aggregate_type: str,
        event_type: str,
        event_data: dict,
        expected_version: int,
    ) -> int:
        with self._lock:
            stream = self._by_aggregate.setdefault(aggregate_id, [])
            current_version = stream[-1]["version"] if stream else 0
            if current_version != expected_version:
                raise ConcurrencyError(aggregate_id, expected_version, current_version)

            new_version = expected_version + 1
            record = {
                "aggregate_id": aggregate_id,
                "aggregate_type": aggregate_type,
                "event_type": event_type,
                "event_data": dict(event_data),
                "version": new_version,
                "created_at": datetime.now(timezone.utc),
            }
            stream.append(record)
            self._events.append(record)
            return new_version

    def load_events(self, aggregate_id: str) -> list[dict]:
        with self._lock:
            return [dict(e) for e in self._by_aggregate.get(aggregate_id, [])]

    def load_all_events(self) -> list[dict]:
        with self._lock:
            return [
                {**e, "created_at": e["created_at"].isoformat()}
                for e in self._events
            ]
