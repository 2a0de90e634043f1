from .hub import BroadcastHub, Viewer

__all__ = ["BroadcastHub", "Viewer"]
