from .routes import permissions_router

__all__ = ["permissions_router"]
