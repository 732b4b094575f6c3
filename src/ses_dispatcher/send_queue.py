# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Unbounded FIFO mailbox shared by producers and the dispatch loop.

Any number of threads or tasks may call :meth:`SendQueue.enqueue`; only the
dispatch loop calls :meth:`SendQueue.peek` and :meth:`SendQueue.dequeue`.
The head item stays in the queue while it is being sent, so
:meth:`SendQueue.is_empty` turns true only after the last attempt has been
notified.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class SendQueue(Generic[T]):
    """Multi-producer, single-consumer FIFO without a size limit."""

    def __init__(self) -> None:
        self._items: deque[T] = deque()
        self._lock = threading.Lock()

    def enqueue(self, item: T) -> None:
        """Append ``item``; never blocks on capacity."""
        with self._lock:
            self._items.append(item)

    def peek(self) -> T | None:
        """Return the oldest item without removing it, or None when empty."""
        try:
            return self._items[0]
        except IndexError:
            return None

    def dequeue(self) -> T | None:
        """Remove and return the oldest item, or None when empty."""
        with self._lock:
            try:
                return self._items.popleft()
            except IndexError:
                return None

    def is_empty(self) -> bool:
        return not self._items

    def __len__(self) -> int:
        return len(self._items)
