"""
Upstream API clients.

Modules:
    courtlistener: UpstreamClient protocol and the httpx CourtListener client
"""

__all__ = ["UpstreamClient", "CourtListenerClient"]
