"""Version information advertised by the service."""

_USER_AGENT = "OpenCIDN/0.1"


def default_user_agent() -> str:
    """Return the User-Agent sent with outgoing HTTP requests."""
    return _USER_AGENT