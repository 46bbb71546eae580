"""A small HTTP route manager with middleware, an in-process test client and a threaded server."""

__version__ = "0.1.0"