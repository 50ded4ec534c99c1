"""Third-party service clients."""

from .xendit_client import FakeXenditClient, XenditClient, XenditError

__all__ = ["FakeXenditClient", "XenditClient", "XenditError"]
