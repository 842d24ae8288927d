from .connection_pool import ConnectionPool
from .proxy import ReverseProxy

__all__ = ["ConnectionPool", "ReverseProxy"]
