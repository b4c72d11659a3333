from slowapi import Limiter
from slowapi.util import get_remote_address

# Shared so routers outside main can apply per-route limits
limiter = Limiter(key_func=get_remote_address)
