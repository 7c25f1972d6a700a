"""API routers."""

from .traces import create_traces_router

__all__ = ["create_traces_router"]
