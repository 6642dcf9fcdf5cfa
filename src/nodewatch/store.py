"""Bounded, thread-safe per-node sample history."""

import threading
from collections import deque

from nodewatch.models import Sample


class SampleStore:
    """Latest sample and rolling history for every node.

    Each node keeps at most ``history_limit`` samples, oldest first. When the
    history is full the oldest sample is evicted to make room for the new one.
    A single lock guards both the history and the latest index, so readers
    always see a state that existed between two commits. Critical sections only
    copy references, never do I/O.

    Args:
        history_limit: Maximum number of samples kept per node.
    """

    def __init__(self, history_limit: int) -> None:
        if history_limit <= 0:
            raise ValueError(f"history_limit must be positive, got {history_limit}")
        self._history_limit = history_limit
        self._lock = threading.Lock()
        self._history: dict[str, deque[Sample]] = {}
        self._latest: dict[str, Sample] = {}

    @property
    def history_limit(self) -> int:
        return self._history_limit

    def commit(self, node_name: str, sample: Sample) -> None:
        """Append a sample to a node's history and make it the latest."""
        with self._lock:
            history = self._history.get(node_name)
            if history is None:
                history = deque(maxlen=self._history_limit)
                self._history[node_name] = history
            history.append(sample)
            self._latest[node_name] = sample

    def read_latest(self) -> dict[str, Sample]:
        """Snapshot of the latest sample per node that has reported at least once."""
        with self._lock:
            return dict(self._latest)

    def read_history(
        self, node_name: str | None = None
    ) -> list[Sample] | dict[str, list[Sample]]:
        """Snapshot of history, oldest first.

        With ``node_name``, returns that node's samples (empty if unknown).
        Without it, returns a mapping of every node name to its samples.
        """
        with self._lock:
            if node_name is not None:
                return list(self._history.get(node_name, ()))
            return {name: list(samples) for name, samples in self._history.items()}

    def __len__(self) -> int:
        with self._lock:
            return sum(len(samples) for samples in self._history.values())
