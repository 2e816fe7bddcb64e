"""Redis Lua scripts for distributed rate limiting.

The script runs atomically on the Redis server, so concurrent requests
from every proxy instance share one counter without lost updates.
"""

# Fixed-window hit counter.
# INCR creates the key at 1 when it is missing or has expired; the expiry
# is only set on that first hit so the window is anchored at its start.
# Returns {count, remaining window in ms}.
FIXED_WINDOW_HIT_SCRIPT = """
    local key = KEYS[1]
    local window_ms = tonumber(ARGV[1])

    local count = redis.call('INCR', key)
    if count == 1 then
        redis.call('PEXPIRE', key, window_ms)
    end

    local ttl = redis.call('PTTL', key)
    if ttl < 0 then
        -- Key lost its expiry (e.g. restored from a snapshot); re-anchor it
        redis.call('PEXPIRE', key, window_ms)
        ttl = window_ms
    end

    return {count, ttl}
"""
