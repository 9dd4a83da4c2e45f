"""HTTP pacing and retry primitives shared by the exchange clients."""
from .rate_limiter import RateLimiter
from .retry import AttemptState, HttpReply, RetryExecutor

__all__ = ["AttemptState", "HttpReply", "RateLimiter", "RetryExecutor"]
