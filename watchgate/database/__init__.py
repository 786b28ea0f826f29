from .base import Base, create_all_tables
from .engine import create_app_engine, get_engine
from .session import create_session_maker


__all__ = ["Base", "create_all_tables", "create_app_engine", "create_session_maker", "get_engine"]
