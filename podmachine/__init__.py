"""podmachine - Docker hosts running as Kubernetes pods."""

__version__ = "1.0.0"
