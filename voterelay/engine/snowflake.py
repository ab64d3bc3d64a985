"""
voterelay.engine.snowflake — Locally minted, time-ordered vote IDs
===================================================================

Top.gg v0 and discordbotlist.com send no usable vote ID, so one is minted
here.  Layout (Discord/Twitter style, 64 bits)::

    | 42 bits ms since epoch | 5 bits worker | 5 bits process | 12 bits sequence |

IDs from one generator are strictly increasing, even when the wall clock
steps backwards or more than 4096 IDs are requested in one millisecond.
"""

from __future__ import annotations

import os
import threading
import time
from datetime import UTC, datetime

__all__ = ["VOTE_ID_EPOCH", "SnowflakeGenerator"]

VOTE_ID_EPOCH = datetime(2025, 11, 4, tzinfo=UTC)

_WORKER_BITS = 5
_PROCESS_BITS = 5
_SEQUENCE_BITS = 12

_MAX_WORKER = (1 << _WORKER_BITS) - 1
_MAX_PROCESS = (1 << _PROCESS_BITS) - 1
_SEQUENCE_MASK = (1 << _SEQUENCE_BITS) - 1

_PROCESS_SHIFT = _SEQUENCE_BITS
_WORKER_SHIFT = _SEQUENCE_BITS + _PROCESS_BITS
_TIMESTAMP_SHIFT = _SEQUENCE_BITS + _PROCESS_BITS + _WORKER_BITS


class SnowflakeGenerator:
    """Thread-safe snowflake factory.

    Parameters
    ----------
    epoch:
        Zero point for the timestamp bits.
    worker_id:
        0–31, distinguishes deployments sharing one vote table.
    process_id:
        0–31; defaults to the low bits of the current PID.
    """

    def __init__(
        self,
        epoch: datetime = VOTE_ID_EPOCH,
        worker_id: int = 0,
        process_id: int | None = None,
    ) -> None:
        if not 0 <= worker_id <= _MAX_WORKER:
            raise ValueError(f"worker_id must be between 0 and {_MAX_WORKER}")
        if process_id is None:
            process_id = os.getpid() & _MAX_PROCESS
        if not 0 <= process_id <= _MAX_PROCESS:
            raise ValueError(f"process_id must be between 0 and {_MAX_PROCESS}")

        self.epoch = epoch
        self.worker_id = worker_id
        self.process_id = process_id
        self._epoch_ms = int(epoch.timestamp() * 1000)
        self._last_ms = -1
        self._sequence = 0
        self._lock = threading.Lock()

    def _now_ms(self) -> int:
        return time.time_ns() // 1_000_000 - self._epoch_ms

    def generate(self) -> int:
        """Return the next ID."""
        with self._lock:
            now = max(self._now_ms(), self._last_ms)
            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & _SEQUENCE_MASK
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond
                    while now <= self._last_ms:
                        now = self._now_ms()
                        if now < self._last_ms:
                            now = self._last_ms + 1
            else:
                self._sequence = 0
            self._last_ms = now

            return (
                (now << _TIMESTAMP_SHIFT)
                | (self.worker_id << _WORKER_SHIFT)
                | (self.process_id << _PROCESS_SHIFT)
                | self._sequence
            )

    def timestamp_of(self, snowflake: int) -> datetime:
        """Recover the creation time encoded in *snowflake*."""
        ms = (snowflake >> _TIMESTAMP_SHIFT) + self._epoch_ms
        return datetime.fromtimestamp(ms / 1000, tz=UTC)
