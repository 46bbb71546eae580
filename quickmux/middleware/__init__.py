"""Middleware: basic auth, CORS, gzip, request logging, body limits, message ids and UUIDs."""

__all__ = ["basicauth", "compress", "cors", "logger", "maxbody", "msgid", "msguuid"]