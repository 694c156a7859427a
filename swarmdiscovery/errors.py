"""
Discovery Errors

Usage errors are raised to the caller straight away and never retried.
Channel failures (a global stream erroring or ending) are not errors at
this level: a Topic absorbs them, reports an update and retries.
"""


class DiscoveryError(Exception):
    """Base class for everything raised by the discovery layer."""


class SessionDestroyedError(DiscoveryError):
    """The session has been destroyed and accepts no new topics."""

    def __init__(self):
        super().__init__("Discovery instance is destroyed")


class ReferrerRequiredError(DiscoveryError):
    """Hole-punching needs a referrer, which local candidates never carry."""

    def __init__(self):
        super().__init__("Referrer needed to holepunch")


class NoBootstrapNodesError(DiscoveryError):
    """Ping was requested but no bootstrap nodes are configured."""

    def __init__(self):
        super().__init__("No bootstrap nodes available")


class BootstrapUnreachableError(DiscoveryError):
    """Every bootstrap node failed to answer a ping."""

    def __init__(self):
        super().__init__("All bootstrap nodes failed")


class LookupFailedError(DiscoveryError):
    """A single-result lookup ended before any peer was seen."""

    def __init__(self, cause: Exception = None):
        super().__init__("Lookup failed")
        self.cause = cause


class HolepunchError(DiscoveryError):
    """The global channel could not hole-punch to a candidate."""
