from __future__ import annotations


class OrderLifecycleError(Exception):
    pass


class NotFound(OrderLifecycleError, LookupError):
    pass


class InvalidTransition(OrderLifecycleError, ValueError):
    def __init__(self, current: str, target: str, reason: str | None = None):
        self.current = current
        self.target = target
        super().__init__(reason or f"illegal status transition {current} -> {target}")


class PersistenceFailure(OrderLifecycleError):
    retryable = True


class PartialApplyRisk(PersistenceFailure):
    def __init__(self, message: str, stale_ids: list[int] | None = None):
        self.stale_ids = list(stale_ids or [])
        super().__init__(message)


class EmptyCart(OrderLifecycleError, ValueError):
    pass
