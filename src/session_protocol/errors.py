from typing import Optional
import requests


class AmbiguousSessionWarning(UserWarning):
    '''More than one registered session claims the same request'''
    pass

class LoginFailedError(requests.RequestException):
    '''A login performed on behalf of a session did not yield a secret'''
    stage: str

    def __init__(self, stage: str, *args, response: Optional[requests.Response] = None):
        self.stage = stage
        super().__init__(*args, response=response)
