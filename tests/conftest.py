import threading
import time
from typing import Optional
from urllib.parse import urlparse

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from session_protocol import SessionInterceptor, SessionRegistry, TokenHeaderSession


BASE_URL = 'http://testserver'


def make_response(status: int, body: bytes = b'', headers: Optional[dict[str, str]] = None,
                  request: Optional[requests.PreparedRequest] = None, connection=None,
                  cookies: Optional[dict[str, str]] = None):
    resp = requests.Response()
    resp.status_code = status
    resp._content = body
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.encoding = 'utf-8'
    resp.request = request
    resp.url = request.url if request is not None else BASE_URL
    resp.connection = connection
    for name, value in (cookies or {}).items():
        resp.cookies.set(name, value)
    return resp


class PingService(BaseAdapter):
    '''
    In-process web service with three POST endpoints:
    /login returns a fresh token "Token-N",
    /ping returns PONG if X-API-Token holds a valid token,
    /logout invalidates the token in X-API-Token.
    Paths in `redirects` answer an authorized request with (status, Location).
    '''
    def __init__(self):
        super().__init__()
        self.valid_tokens: set[str] = set()
        self.login_count = 0; self.ping_count = 0; self.logout_count = 0
        self.calls: list[tuple[str, Optional[str]]] = []
        self.fail_logins = False
        self.max_logins: Optional[int] = None
        self.redirects: dict[str, tuple[int, str]] = {}
        self.send_kwargs: list[dict] = []
        self.closed = False
        self.login_delay = 0.0
        self.broken_paths: set[str] = set()
        self._lock = threading.Lock()

    def paths(self): return [path for path, _ in self.calls]

    def revoke_all(self):
        with self._lock: self.valid_tokens.clear()

    def send(self, request: requests.PreparedRequest, **kwargs):
        assert request.url is not None
        path = urlparse(request.url).path
        token = request.headers.get('X-API-Token')
        with self._lock:
            self.calls.append((path, token))
            self.send_kwargs.append(kwargs)
        if path in self.broken_paths:
            raise requests.ConnectionError(f'{path} is down', request=request)
        if path == '/login':
            time.sleep(self.login_delay)
            with self._lock:
                if self.fail_logins or self.login_count == self.max_logins:
                    return make_response(403, b'', request=request, connection=self)
                self.login_count += 1
                new_token = f'Token-{self.login_count}'
                self.valid_tokens.add(new_token)
            return make_response(200, new_token.encode(), request=request, connection=self)
        with self._lock:
            if token is None or token not in self.valid_tokens:
                return make_response(401, request=request, connection=self)
            if path in self.redirects:
                status, location = self.redirects[path]
                return make_response(status, headers={'Location': location}, request=request, connection=self)
            if path == '/ping':
                self.ping_count += 1
                return make_response(200, b'PONG', request=request, connection=self)
            if path == '/logout':
                self.valid_tokens.remove(token)
                self.logout_count += 1
                return make_response(200, request=request, connection=self)
        return make_response(404, request=request, connection=self)

    def close(self): self.closed = True


def login_request():
    return requests.Request('POST', BASE_URL + '/login')


@pytest.fixture
def service():
    return PingService()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def interceptor(registry):
    return SessionInterceptor(registry)


@pytest.fixture
def session():
    return TokenHeaderSession(login_request())


@pytest.fixture
def plain_http(service):
    with requests.Session() as http:
        http.mount(BASE_URL, service)
        yield http


@pytest.fixture
def http(service, interceptor):
    with requests.Session() as http:
        http.mount(BASE_URL, service)
        interceptor.install(http)
        yield http
