from .request_id import RequestIDMiddleware, bind_actor, get_actor_id, get_client_ip, get_request_id
from .logging import LoggingMiddleware

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "bind_actor",
    "get_actor_id",
    "get_request_id",
    "get_client_ip",
]
