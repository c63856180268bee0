"""Rate limiting adapters.

Two limiters live here:
- ``InMemorySlidingWindowRateLimiter``: coarse per-client (IP) throttling,
  per process.
- ``QuotaLimiter``: per-user, per-endpoint minute/day quotas persisted in the
  ``user_api_limits`` table so they hold across instances.
"""
