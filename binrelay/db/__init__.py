from .session import DbSession, make_engine

__all__ = ["DbSession", "make_engine"]
