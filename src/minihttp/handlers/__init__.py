"""
=============================================================================
REQUEST HANDLERS
=============================================================================

Handlers are plain callables: HTTPRequest in, HTTPResponse out.

    def hello(request):
        return ok("hello")

    router.add_exact("/hello", hello)

A handler reports failure by RETURNING a 4xx/5xx response. If one raises
anyway, the session logs the traceback and answers 500.

=============================================================================
"""

from .basic import echo, register_default_routes, root, user_agent
from .files import FileHandler

__all__ = [
    "root",
    "echo",
    "user_agent",
    "register_default_routes",
    "FileHandler",
]
