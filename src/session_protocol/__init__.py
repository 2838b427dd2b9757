from .errors import *
from .session import AuthSession, SecretSession, TokenHeaderSession, CookieSession
from .registry import SessionRegistry
from .interceptor import SessionInterceptor
from .adapter import SessionAdapter
from .auth_wrapper import SessionAuth
