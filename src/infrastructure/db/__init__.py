from . import models  # noqa: F401
from .base import Base
from .session import dispose_engine, get_engine, get_session, get_session_factory

__all__ = ["Base", "dispose_engine", "get_engine", "get_session", "get_session_factory"]
