# brushquote/core/rate_limit.py
from slowapi import Limiter
from slowapi.util import get_remote_address

# One shared limiter for the whole app, keyed per client + portal token
limiter = Limiter(
    key_func=lambda req: f"{get_remote_address(req)}:{req.headers.get('x-portal-token', 'anon')[:16]}"
)
