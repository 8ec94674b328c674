"""
Cache Domain Module

Key space, TTL tiers, cache entries, the store contract and the
invalidation recipes run after every mutation.
"""
