import threading
from typing import Any, Dict, Iterable

from ffclient.schemas import Evaluation

_MISSING = object()


class EvaluationCache:
    """flag -> evaluated value for one client.

    Writes after close() are dropped and reported as False, so a fetch that
    was in flight when the client shut down cannot repopulate it.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, flag: str, default: Any = None) -> Any:
        value = self._values.get(flag, _MISSING)
        return default if value is _MISSING else value

    def __contains__(self, flag: str) -> bool:
        return flag in self._values

    def __len__(self) -> int:
        return len(self._values)

    def set(self, flag: str, value: Any) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._values[flag] = value
            return True

    def update(self, evaluations: Iterable[Evaluation]) -> bool:
        with self._lock:
            if self._closed:
                return False
            for ev in evaluations:
                self._values[ev.flag] = ev.value
            return True

    def delete(self, flag: str) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._values.pop(flag, None)
            return True

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def close(self):
        with self._lock:
            self._closed = True
            self._values.clear()
