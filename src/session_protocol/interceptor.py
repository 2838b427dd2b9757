import logging
import threading
import weakref
from typing import Callable, Optional

import requests

from .errors import *
from .registry import SessionRegistry
from .session import AuthSession, LoginRequest


log = logging.getLogger(__name__)

Transport = Callable[..., requests.Response]


class _LoginGate:
    '''Serializes logins for one session; `generation` counts successful ones.'''
    def __init__(self):
        self.lock = threading.Lock()
        self.generation = 0
        self.pinned: Optional[AuthSession] = None


class SessionInterceptor:
    '''
    Runs every request through the login/stamp/send/retry lifecycle of the
    session that claims it.

    A transport is anything shaped like `HTTPAdapter.send`: it takes a prepared
    request plus the usual keyword arguments (timeout, verify, ...) and returns
    a response. Those keyword arguments are forwarded to login requests too, so
    timeouts stay the transport's business.
    '''
    registry: SessionRegistry

    def __init__(self, registry: Optional[SessionRegistry] = None):
        self.registry = registry if registry is not None else SessionRegistry()
        # keyed by id(): sessions compare by identity and need not be hashable
        self._gates: dict[int, _LoginGate] = {}
        self._gates_lock = threading.Lock()

    def register(self, session: AuthSession): self.registry.register(session)

    def invalidate(self, session: AuthSession): self.registry.invalidate(session)

    def install(self, http: requests.Session):
        '''Wrap every adapter mounted on `http` so its requests go through this interceptor.'''
        from .adapter import SessionAdapter
        for prefix, adapter in list(http.adapters.items()):
            if isinstance(adapter, SessionAdapter): continue
            http.mount(prefix, SessionAdapter(self, adapter))
        return http

    def _gate(self, session: AuthSession):
        key = id(session)
        with self._gates_lock:
            gate = self._gates.get(key)
            if gate is None:
                gate = self._gates[key] = _LoginGate()
                try: weakref.finalize(session, self._gates.pop, key, None)
                except TypeError:
                    # no weak references: keep it alive so its id is never reused
                    gate.pinned = session
            return gate

    def _login(self, session: AuthSession, gate: _LoginGate, login: LoginRequest,
               transport: Transport, stage: str, **kwargs):
        # caller holds gate.lock
        prep = login.prepare() if isinstance(login, requests.Request) else login.copy()
        log.debug('logging in (%s) via %s %s', stage, prep.method, prep.url)
        try: resp = transport(prep, **kwargs)
        except requests.RequestException as err:
            raise LoginFailedError(stage, f'login request to {prep.url} failed') from err
        if not session.store_secret(resp):
            log.warning('login (%s) via %s returned no secret (status %s)', stage, prep.url, resp.status_code)
            raise LoginFailedError(stage, f'login via {prep.url} returned no secret (status {resp.status_code})',
                                   response=resp)
        gate.generation += 1
        log.info('logged in via %s (login #%d for %r)', prep.url, gate.generation, session)

    def prepare(self, session: AuthSession, req: requests.PreparedRequest,
                transport: Transport, **kwargs) -> int:
        '''Log in first if the session asks to, then stamp `req`. Returns the login generation used.'''
        gate = self._gate(session)
        with gate.lock:
            login = session.login_request_before(req)
            if login is not None:
                self._login(session, gate, login, transport, 'before', **kwargs)
            session.apply_secret(req)
            return gate.generation

    def after_response(self, session: AuthSession, original: requests.PreparedRequest,
                       resp: requests.Response, transport: Transport, generation: int,
                       **kwargs) -> requests.Response:
        '''
        Retry `original` (unstamped) once if `resp` says the session expired.
        The retried response is final even if it signals expiry again.
        '''
        login = session.login_request_after(resp)
        if login is None: return resp
        log.debug('%s %s: session expired (status %s)', original.method, original.url, resp.status_code)
        gate = self._gate(session)
        retry = original.copy()
        with gate.lock:
            if gate.generation == generation:
                self._login(session, gate, login, transport, 'after', **kwargs)
            else:
                log.debug('another request already logged in again, reusing its secret')
            session.apply_secret(retry)
        _ = resp.content  # drain socket so connection can be reused
        new_resp = transport(retry, **kwargs)
        new_resp.history.append(resp)
        return new_resp

    def send(self, transport: Transport, req: requests.PreparedRequest, **kwargs) -> requests.Response:
        session = self.registry.resolve(req)
        if session is None: return transport(req, **kwargs)
        # requests builds redirect hops from `req`, so only a copy carries the secret
        stamped = req.copy()
        generation = self.prepare(session, stamped, transport, **kwargs)
        resp = transport(stamped, **kwargs)
        return self.after_response(session, req, resp, transport, generation, **kwargs)
