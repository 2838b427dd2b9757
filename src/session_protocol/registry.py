import logging
import threading
import warnings
from typing import Optional

import requests

from .errors import *
from .session import AuthSession


log = logging.getLogger(__name__)


class SessionRegistry:
    '''Sessions currently active, in registration order.'''
    _sessions: tuple[AuthSession, ...]

    def __init__(self):
        self._sessions = ()
        self._lock = threading.Lock()

    @property
    def sessions(self): return self._sessions

    def __len__(self): return len(self._sessions)

    def __contains__(self, session: object):
        return any(s is session for s in self._sessions)

    def register(self, session: AuthSession):
        with self._lock:
            if session in self: return
            self._sessions = (*self._sessions, session)
        log.debug('registered session %r', session)

    def invalidate(self, session: AuthSession):
        with self._lock:
            if session not in self: return
            self._sessions = tuple(s for s in self._sessions if s is not session)
        log.debug('invalidated session %r', session)

    def resolve(self, req: requests.PreparedRequest) -> Optional[AuthSession]:
        # the tuple is replaced, never mutated, so this snapshot needs no lock
        matches = [s for s in self._sessions if s.should_handle(req)]
        if not matches: return None
        if len(matches) > 1:
            warnings.warn(f'{len(matches)} sessions claim {req.method} {req.url}, using the first registered',
                          category=AmbiguousSessionWarning)
        return matches[0]
