from typing import Optional
import requests
from requests.adapters import BaseAdapter, HTTPAdapter

from .interceptor import SessionInterceptor


class SessionAdapter(BaseAdapter):
    '''Transport adapter that hands every request to an interceptor before the wrapped adapter.'''
    interceptor: SessionInterceptor
    transport: BaseAdapter

    def __init__(self, interceptor: SessionInterceptor, transport: Optional[BaseAdapter] = None):
        super().__init__()
        self.interceptor = interceptor
        self.transport = transport if transport is not None else HTTPAdapter()

    def send(self, request: requests.PreparedRequest, **kwargs):
        return self.interceptor.send(self.transport.send, request, **kwargs)

    def close(self):
        self.transport.close()
