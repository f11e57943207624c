"""A small TCP load balancer with round-robin and weighted round-robin backend selection."""

__version__ = "0.1.0"