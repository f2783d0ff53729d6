from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)

BatchHandler = Callable[[Any], object]

_STOP = object()


class BatchDispatcher:
    """
    单消费者队列：扫描回调可在任意线程 submit()，
    由唯一的工作线程按顺序交给 handler（通常是 ScanSession.on_observation_batch）。
    """

    def __init__(self, handler: BatchHandler, maxsize: int = 0):
        self.handler = handler
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name="batch-dispatcher", daemon=True)
        self._thread.start()

    def submit(self, item: Any) -> None:
        self._queue.put(item)

    def join(self) -> None:
        """等待已提交的批次处理完毕"""
        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        if not self.running:
            return
        self._queue.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.handler(item)
            except Exception as e:
                logger.exception("处理观测批次出错: %s", e)
            finally:
                self._queue.task_done()
