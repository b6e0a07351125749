"""
HTTP middleware: request ids and request/response logging.
"""
