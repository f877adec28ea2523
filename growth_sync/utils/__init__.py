"""
Utility Modules

Configuration loading, clock, retry policy and recency helpers.
"""

from growth_sync.utils.clock import Clock, FrozenClock
from growth_sync.utils.config import Config, RateLimitConfig, load_config
from growth_sync.utils.ratelimit import RetryPolicy

__all__ = ["Clock", "FrozenClock", "Config", "RateLimitConfig", "load_config", "RetryPolicy"]
