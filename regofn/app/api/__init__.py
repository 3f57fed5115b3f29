"""HTTP API routers for regofn."""

from .function import router as function_router

__all__ = ["function_router"]
