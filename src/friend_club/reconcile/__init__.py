from .reconciler import ExpirationReconciler

__all__ = ["ExpirationReconciler"]
