"""
Mentor Stream Proxy.

Relays a hosted LLM's event-stream chat completion to the caller as a live
plain-text body, for the store mentor chat of the learning platform.
"""

__version__ = "0.1.0"
