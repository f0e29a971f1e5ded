import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from core.config import STORAGE_TIMEOUT
from core.exceptions import StorageFailure, handle_exception
from core.result import Result
from model.page import PageLookup
from storage.store import PageStore


@dataclass
class StorageRequest:
    """One queued call; the future carries the reply back to its own caller"""

    operation: str
    args: Tuple[Any, ...] = ()
    future: concurrent.futures.Future = field(default_factory=concurrent.futures.Future)


class StorageWorker:
    """Runs the page store on a dedicated thread and event loop.

    Requests arrive through a queue and are executed one at a time, in
    arrival order. The worker only accepts requests once the schema is ready.
    """

    def __init__(
        self,
        store: Optional[PageStore] = None,
        timeout: float = STORAGE_TIMEOUT,
        url: Optional[str] = None,
    ):
        # Without a store, one is built on the storage thread from ``url``
        self.store = store
        self.url = url
        self.error: Optional[BaseException] = None
        self.facade = StorageFacade(self, timeout)
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._ready = threading.Event()
        self._settled = threading.Event()
        self._lock = threading.Lock()

    def thread_start(self):
        """Start the storage thread"""
        with self._lock:
            if self._thread and self._thread.is_alive():
                logging.warning("Storage thread already running")
                return

            self.error = None
            self._ready.clear()
            self._settled.clear()
            # Created before the thread runs so thread_stop can always signal it
            self._loop = asyncio.new_event_loop()
            self._queue = asyncio.Queue()
            self._stop_event = asyncio.Event()
            self._thread = threading.Thread(target=self._run, name="storage", daemon=True)
            self._thread.start()
            logging.info("Storage thread started")

    def thread_stop(self):
        """Stop the storage thread, failing whatever is still queued"""
        with self._lock:
            self._ready.clear()
            if self._loop and self._stop_event and not self._loop.is_closed():
                try:
                    self._loop.call_soon_threadsafe(self._stop_event.set)
                except RuntimeError:
                    # Loop closed on its own after a failed initialization
                    logging.debug("Storage loop already closed")
            if self._thread:
                self._thread.join(timeout=5)
                self._thread = None
                logging.info("Storage thread stopped")

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until initialization settles; True only if the schema is ready"""
        self._settled.wait(timeout)
        return self._ready.is_set()

    @property
    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def submit(self, request: StorageRequest):
        if not self._ready.is_set() or self._loop is None:
            raise RuntimeError("storage worker is not running")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, request)

    async def _serve(self):
        if self.store is None:
            # A bad URL or a missing driver fails here, as a storage startup error
            self.store = PageStore(url=self.url)

        result = await self.store.initialize()
        if result.failed:
            self.error = result.error
            logging.error(f"Database preparation error: {result.error}")
            self._settled.set()
            self.store.close()
            return

        if self._stop_event.is_set():
            logging.info("Storage stopped before it became ready")
            self.store.close()
            return

        self._ready.set()
        self._settled.set()
        consumer = asyncio.create_task(self._consume())
        await self._stop_event.wait()

        consumer.cancel()
        await asyncio.gather(consumer, return_exceptions=True)
        while not self._queue.empty():
            self._abort(self._queue.get_nowait())
        self.store.close()

    async def _consume(self):
        while True:
            request = await self._queue.get()
            # Skip requests whose caller already gave up
            if not request.future.set_running_or_notify_cancel():
                continue
            try:
                result = await self._dispatch(request)
            except asyncio.CancelledError:
                request.future.set_result(self._stopped(request.operation))
                raise
            request.future.set_result(result)

    async def _dispatch(self, request: StorageRequest) -> Result:
        handler = getattr(self.store, request.operation)
        try:
            return await handler(*request.args)
        except Exception as e:
            handle_exception(e, f"Unexpected storage error in {request.operation}", source="storage")
            return Result.fail(StorageFailure(request.operation, e))

    def _abort(self, request: StorageRequest):
        if request.future.set_running_or_notify_cancel():
            request.future.set_result(self._stopped(request.operation))

    @staticmethod
    def _stopped(operation: str) -> Result:
        return Result.fail(StorageFailure(operation, ConnectionAbortedError("storage worker stopped")))

    def _run(self):
        """Run the store in the event loop owned by this thread"""
        loop = self._loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._serve())
        except Exception as e:
            self.error = e
            handle_exception(e, "Storage exited with error", source="storage")
        finally:
            self._ready.clear()
            self._settled.set()
            loop.close()


class StorageFacade:
    """Client handle to the page store, safe to share between HTTP replicas.

    Each method queues one request and awaits that request's own reply, bounded
    by ``timeout`` seconds. Failures come back as ``Result`` values.
    """

    def __init__(self, worker: StorageWorker, timeout: float = STORAGE_TIMEOUT):
        self._worker = worker
        self.timeout = timeout

    @property
    def is_ready(self) -> bool:
        return self._worker.is_ready

    async def _call(self, operation: str, *args) -> Result:
        request = StorageRequest(operation, args)
        try:
            self._worker.submit(request)
        except RuntimeError as e:
            return Result.fail(StorageFailure(operation, e))

        try:
            return await asyncio.wait_for(asyncio.wrap_future(request.future), self.timeout)
        except asyncio.TimeoutError:
            logging.error(f"Storage call {operation} timed out after {self.timeout}s")
            return Result.fail(
                StorageFailure(operation, TimeoutError(f"no reply within {self.timeout}s"))
            )

    async def fetch_all_pages(self) -> Result[List[str]]:
        return await self._call("fetch_all_pages")

    async def fetch_all_pages_data(self) -> Result[List[Dict[str, Any]]]:
        return await self._call("fetch_all_pages_data")

    async def fetch_page(self, name: str) -> Result[PageLookup]:
        return await self._call("fetch_page", name)

    async def fetch_page_by_id(self, page_id: int) -> Result[PageLookup]:
        return await self._call("fetch_page_by_id", page_id)

    async def create_page(self, name: str, content: str) -> Result[None]:
        return await self._call("create_page", name, content)

    async def save_page(self, page_id: int, content: str) -> Result[None]:
        return await self._call("save_page", page_id, content)

    async def delete_page(self, page_id: int) -> Result[None]:
        return await self._call("delete_page", page_id)


__all__ = ["PageStore", "StorageFacade", "StorageRequest", "StorageWorker"]
