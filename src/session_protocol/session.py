import logging
import threading
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Protocol, Union

import requests

from .utils import *


log = logging.getLogger(__name__)

LoginRequest = Union[requests.Request, requests.PreparedRequest]


class AuthSession(Protocol):
    '''
    Policy object owning a secret for the requests it claims.

    The interceptor calls `should_handle` first, then asks for a login before
    sending (`login_request_before`), stamps the request (`apply_secret`) and
    checks the response for expiry (`login_request_after`). Whenever a login
    request was sent on the session's behalf, `store_secret` gets its response
    and reports whether a usable secret came back. It must never raise.
    '''
    def should_handle(self, req: requests.PreparedRequest) -> bool: ...
    def login_request_before(self, req: requests.PreparedRequest) -> Optional[LoginRequest]: ...
    def login_request_after(self, resp: requests.Response) -> Optional[LoginRequest]: ...
    def apply_secret(self, req: requests.PreparedRequest) -> None: ...
    def store_secret(self, resp: requests.Response) -> bool: ...


class SecretSession(ABC):
    '''Session that keeps one secret behind a lock and logs in with a fixed request.'''
    login_request: LoginRequest
    netloc: Optional[str]; path_prefix: str
    expired_statuses: frozenset[int]
    expired_marker: Optional[bytes]

    def __init__(self, login_request: LoginRequest, netloc: Optional[str] = None,
                 path_prefix: str = '', expired_statuses: Iterable[int] = (401,),
                 expired_marker: Optional[bytes] = None):
        self.login_request = login_request
        self.netloc = netloc; self.path_prefix = path_prefix
        self.expired_statuses = frozenset(expired_statuses)
        self.expired_marker = expired_marker
        self._secret: Optional[str] = None
        self._lock = threading.Lock()

    @abstractmethod
    def extract_secret(self, resp: requests.Response) -> Optional[str]: ...

    @abstractmethod
    def attach_secret(self, req: requests.PreparedRequest, secret: str) -> None: ...

    @property
    def secret(self) -> Optional[str]:
        with self._lock: return self._secret

    def clear_secret(self):
        with self._lock: self._secret = None

    def should_handle(self, req: requests.PreparedRequest) -> bool:
        if self.netloc is None: return True
        assert req.url is not None
        return url_in_scope(req.url, self.netloc, self.path_prefix)

    def login_request_before(self, req: requests.PreparedRequest):
        return self.login_request if self.secret is None else None

    def is_expired(self, resp: requests.Response) -> bool:
        if resp.status_code in self.expired_statuses: return True
        return self.expired_marker is not None and self.expired_marker in resp.content

    def login_request_after(self, resp: requests.Response):
        return self.login_request if self.is_expired(resp) else None

    def apply_secret(self, req: requests.PreparedRequest):
        secret = self.secret
        if secret is not None: self.attach_secret(req, secret)

    def store_secret(self, resp: requests.Response) -> bool:
        try:
            if not 200 <= resp.status_code < 300 or not resp.content:
                return False
            secret = self.extract_secret(resp)
        except Exception:
            log.warning('could not extract secret from login response (%s)', resp.url, exc_info=True)
            return False
        if not secret: return False
        with self._lock: self._secret = secret
        return True


class TokenHeaderSession(SecretSession):
    '''The login response body is the token; it travels in a request header.'''
    header: str

    def __init__(self, login_request: LoginRequest, header: str = 'X-API-Token', **kwargs):
        super().__init__(login_request, **kwargs)
        self.header = header

    def extract_secret(self, resp: requests.Response):
        return resp.text.strip()

    def attach_secret(self, req: requests.PreparedRequest, secret: str):
        req.headers[self.header] = secret


class CookieSession(SecretSession):
    '''Secret is a session cookie set by the login response, e.g. JSESSIONID.'''
    cookie_name: str

    def __init__(self, login_request: LoginRequest, cookie_name: str = 'JSESSIONID', **kwargs):
        super().__init__(login_request, **kwargs)
        self.cookie_name = cookie_name

    def extract_secret(self, resp: requests.Response):
        return resp.cookies.get(self.cookie_name)

    def attach_secret(self, req: requests.PreparedRequest, secret: str):
        req.headers['Cookie'] = replace_cookie_pair(req.headers.get('Cookie', ''), self.cookie_name, secret)
