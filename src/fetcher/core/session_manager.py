"""
Thread-local requests.Session management.

Each thread that executes requests through a client gets its own session
(cookie jar, adapters, connection pools); the client closes them all.
"""

import logging
import threading
import weakref
from typing import Callable, Optional, Set

import requests
from requests.adapters import HTTPAdapter

from .config import ClientConfig

logger = logging.getLogger(__name__)


def build_session(config: ClientConfig) -> requests.Session:
    """
    Session configured from a ClientConfig.

    The adapter never retries on its own (max_retries=0); the execution
    engine owns every retry decision.
    """
    session = requests.Session()

    adapter = HTTPAdapter(
        pool_connections=config.pool.pool_connections,
        pool_maxsize=config.pool.pool_maxsize,
        pool_block=config.pool.pool_block,
        max_retries=0
    )
    session.mount('http://', adapter)
    session.mount('https://', adapter)

    session.max_redirects = config.pool.max_redirects
    session.verify = config.security.verify_ssl

    if config.headers:
        session.headers.update(config.headers)

    return session


class SessionManager:
    """
    Lazily creates one session per thread and tracks them for close_all().

    Example:
        >>> manager = SessionManager(lambda: build_session(config))
        >>> session = manager.get_session()
        >>> manager.close_all()
    """

    def __init__(self, session_factory: Callable[[], requests.Session]):
        self._session_factory = session_factory
        self._local = threading.local()
        self._all_sessions: Set[weakref.ref] = set()
        self._sessions_lock = threading.Lock()

    def get_session(self) -> requests.Session:
        session: Optional[requests.Session] = getattr(self._local, 'session', None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._all_sessions.add(weakref.ref(session, self._forget))
            logger.debug("Created session for thread %s", threading.current_thread().name)
        return session

    def _forget(self, ref: weakref.ref) -> None:
        with self._sessions_lock:
            self._all_sessions.discard(ref)

    def close_current_session(self) -> None:
        """Close the calling thread's session only."""
        session = getattr(self._local, 'session', None)
        self._local.session = None
        if session is not None:
            session.close()

    def close_all(self) -> None:
        """Close sessions of all threads. Safe to call repeatedly."""
        self._local.session = None

        with self._sessions_lock:
            refs = list(self._all_sessions)
            self._all_sessions.clear()

        for ref in refs:
            session = ref()
            if session is not None:
                session.close()

    @property
    def active_sessions(self) -> int:
        """Sessions created and not yet closed or collected."""
        with self._sessions_lock:
            return sum(1 for ref in self._all_sessions if ref() is not None)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()
        return False
