"""
Compliance Service Facades

The only surface the UI layer calls. Every coroutine resolves to a
ServiceResult and never raises.
"""
