import logging
import socket
import sys
import threading
import time
from typing import List, Optional, Tuple

import uvicorn

from core.config import (
    DATABASE_URL,
    HTTP_INSTANCES,
    STARTUP_TIMEOUT,
    STORAGE_TIMEOUT,
    WEB_HOST,
    WEB_PORT,
)
from core.exceptions import StartupFailure, handle_exception
from storage import StorageWorker
from storage.store import PageStore
from web import create_app


class WikiApp:
    """Brings the wiki up in two phases: storage first, then the HTTP replicas.

    Any failure stops whatever was already started and raises StartupFailure;
    there is no partially started state.
    """

    def __init__(
        self,
        store: Optional[PageStore] = None,
        url: Optional[str] = None,
        host: str = WEB_HOST,
        port: int = WEB_PORT,
        instances: int = HTTP_INSTANCES,
        storage_timeout: float = STORAGE_TIMEOUT,
        startup_timeout: float = STARTUP_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.instances = instances
        self.startup_timeout = startup_timeout
        self.storage = StorageWorker(store, timeout=storage_timeout, url=url)
        self.replicas: List[Tuple[uvicorn.Server, threading.Thread]] = []
        self._socket: Optional[socket.socket] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Address the replicas listen on, once bound"""
        return self._socket.getsockname()[:2]

    def start(self):
        try:
            self._start_storage()
            self._start_http()
        except StartupFailure as e:
            handle_exception(e, "Wiki startup aborted", source="startup")
            self.stop()
            raise

    def stop(self):
        for server, _ in self.replicas:
            server.should_exit = True
        for _, thread in self.replicas:
            thread.join(timeout=5)
        self.replicas = []
        if self._socket:
            self._socket.close()
            self._socket = None
        self.storage.thread_stop()

    def _start_storage(self):
        logging.info("Starting storage")
        self.storage.thread_start()
        if not self.storage.wait_ready(self.startup_timeout):
            cause = self.storage.error or TimeoutError(
                f"storage not ready after {self.startup_timeout}s"
            )
            raise StartupFailure("storage", cause)

    def _start_http(self):
        try:
            self._socket = socket.create_server((self.host, self.port))
        except OSError as e:
            raise StartupFailure("bind", e)
        logging.info(f"Starting {self.instances} HTTP replicas on port {self.address[1]}")

        # Each replica accepts on its own descriptor of the shared listening socket
        for replica in range(self.instances):
            config = uvicorn.Config(
                app=create_app(self.storage.facade, replica),
                loop="asyncio",
                lifespan="on",
                log_level="info",
            )
            server = uvicorn.Server(config)
            thread = threading.Thread(
                target=server.run,
                kwargs={"sockets": [self._socket.dup()]},
                name=f"http-{replica}",
                daemon=True,
            )
            thread.start()
            self.replicas.append((server, thread))

        self._wait_started()
        logging.info(f"HTTP server running on port {self.address[1]}")

    def _wait_started(self):
        deadline = time.monotonic() + self.startup_timeout
        while not all(server.started for server, _ in self.replicas):
            for replica, (server, thread) in enumerate(self.replicas):
                if not server.started and not thread.is_alive():
                    raise StartupFailure(
                        "http", RuntimeError(f"replica {replica} exited during startup")
                    )
            if time.monotonic() > deadline:
                raise StartupFailure(
                    "http", TimeoutError(f"replicas not started after {self.startup_timeout}s")
                )
            time.sleep(0.05)


def main():
    wiki = WikiApp(url=DATABASE_URL)
    try:
        wiki.start()
    except StartupFailure:
        sys.exit(1)

    try:
        # Replicas serve on their own threads
        while all(thread.is_alive() for _, thread in wiki.replicas):
            time.sleep(1)
        logging.error("HTTP replica exited unexpectedly")
    except KeyboardInterrupt:
        logging.info("Server shutdown by keyboard interrupt")
    finally:
        wiki.stop()


if __name__ == "__main__":
    main()
