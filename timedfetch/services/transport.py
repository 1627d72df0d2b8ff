from __future__ import annotations

import logging
import socket
import threading
from typing import List

import requests
from requests.adapters import HTTPAdapter
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

logger = logging.getLogger(__name__)


class AbortableHTTPAdapter(HTTPAdapter):
    """HTTPAdapter whose close() also shuts down sockets that are still in use.

    urllib3 only closes idle pooled connections on close; a connection that is
    waiting for headers or streaming a body belongs to the request in flight.
    Shutting its socket down wakes the blocked read in the worker thread.
    Connections opened after close() are shut down as soon as they connect.
    """

    def __init__(self, *args, **kwargs):
        self._lock = threading.Lock()
        self._connections: List = []
        self._closed = False
        super().__init__(*args, **kwargs)

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": self._tracking_pool(HTTPConnectionPool),
            "https": self._tracking_pool(HTTPSConnectionPool),
        }

    def _tracking_pool(self, pool_cls):
        track = self._track

        class _Connection(pool_cls.ConnectionCls):
            def connect(self):
                super().connect()
                track(self)

        return type(pool_cls.__name__, (pool_cls,), {"ConnectionCls": _Connection})

    def _track(self, conn) -> None:
        with self._lock:
            if not self._closed:
                self._connections.append(conn)
                return
        _shutdown(conn)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            connections, self._connections = self._connections, []
        for conn in connections:
            _shutdown(conn)
        super().close()


def _shutdown(conn) -> None:
    sock = getattr(conn, "sock", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # already closed by the peer or by urllib3
        logger.debug("Socket for %s already closed", getattr(conn, "host", "?"))


def new_session() -> requests.Session:
    """Session whose close() aborts requests still in flight."""
    session = requests.Session()
    adapter = AbortableHTTPAdapter()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
