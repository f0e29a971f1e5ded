from sqlalchemy.engine import Engine
from sqlmodel import create_engine

from core.config import DATABASE_URL


def make_engine(url: str = DATABASE_URL) -> Engine:
    """Create the engine backing the page store"""
    connect_args = {}
    if url.startswith("sqlite"):
        # Sessions run on worker threads, not the thread that opened the pool
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)
