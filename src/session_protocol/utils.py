from urllib.parse import urlparse


def url_in_scope(url: str, netloc: str, path_prefix: str = '') -> bool:
    parsed = urlparse(url)
    return parsed.netloc == netloc and parsed.path.startswith(path_prefix)

def replace_cookie_pair(header: str, name: str, value: str) -> str:
    '''Set `name=value` in a Cookie header, leaving every other pair as it was.'''
    pairs = [p.strip() for p in header.split(';') if p.strip()]
    pairs = [p for p in pairs if p.split('=', 1)[0].strip() != name]
    pairs.append(f'{name}={value}')
    return '; '.join(pairs)
