import functools
from typing import Optional
import requests
from requests.adapters import BaseAdapter, HTTPAdapter
from requests.auth import AuthBase as RequestsAuthBase

from .interceptor import SessionInterceptor
from .session import AuthSession


class SessionAuth(RequestsAuthBase):
    '''
    Same lifecycle as `SessionAdapter`, plugged in as `auth=` instead.

    Logins needed before sending go through `transport` with `send_kwargs`
    (timeout, verify, proxies, ...), not through the calling session's mounted
    adapters, so pass the same options you give the session. The expiry check
    runs as a response hook and resends through the connection that answered.

    requests copies the sent request for every redirect hop, so the stamp is
    removed from it once the response is in; a hop the session claims is sent
    unstamped, and if it comes back expired it is stamped and resent once.
    '''
    interceptor: SessionInterceptor
    transport: BaseAdapter

    def __init__(self, interceptor: SessionInterceptor, transport: Optional[BaseAdapter] = None,
                 **send_kwargs):
        self.interceptor = interceptor
        self.transport = transport if transport is not None else HTTPAdapter()
        self.send_kwargs = send_kwargs

    def close(self):
        self.transport.close()

    def resend_hop(self, resp: requests.Response, **kwargs):
        hop = resp.request
        session = self.interceptor.registry.resolve(hop)
        if session is None or session.login_request_after(resp) is None: return resp
        retry = hop.copy()
        self.interceptor.prepare(session, retry, resp.connection.send, **kwargs)
        _ = resp.content
        new_resp = resp.connection.send(retry, **kwargs)
        new_resp.history.append(resp)
        return new_resp

    def handle_response(self, stamped: requests.PreparedRequest, original: requests.PreparedRequest,
                        session: Optional[AuthSession], generation: int,
                        resp: requests.Response, **kwargs):
        if resp.request is not stamped:
            return self.resend_hop(resp, **kwargs)
        if session is None: return resp
        stamped.headers = original.headers.copy()
        return self.interceptor.after_response(
            session, original, resp, resp.connection.send, generation, **kwargs)

    def __call__(self, req: requests.PreparedRequest):
        session = self.interceptor.registry.resolve(req)
        original = req.copy()
        generation = 0
        if session is not None:
            generation = self.interceptor.prepare(session, req, self.transport.send, **self.send_kwargs)
        req.register_hook('response', functools.partial(self.handle_response, req, original, session, generation))
        return req
