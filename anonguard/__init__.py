"""AnonGuard — anonymous-access gateway for web analytics platforms."""

__version__ = "1.0.0"
