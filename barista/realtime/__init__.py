from .manager import ConnectionManager, build_envelope, get_ws_manager, ws_manager

__all__ = ["ConnectionManager", "build_envelope", "get_ws_manager", "ws_manager"]
