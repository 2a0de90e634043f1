from .registry import AuthenticatedContext, SessionRegistry
from .xrpc import XrpcContext

__all__ = ["AuthenticatedContext", "SessionRegistry", "XrpcContext"]
