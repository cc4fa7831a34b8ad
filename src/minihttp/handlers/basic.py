"""
Built-in handlers and the default route table.

    /              (exact)   200, empty body
    /echo/<text>   (prefix)  200, text/plain "<text>"
    /user-agent    (exact)   200, text/plain User-Agent value; 400 if absent
    /files/<name>  (prefix)  see handlers.files, only with a directory
"""

from typing import Optional
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, bad_request, ok
from ..http.router import Router
from .files import FileHandler


logger = logging.getLogger(__name__)


ECHO_PREFIX = "/echo/"
FILES_PREFIX = "/files/"


def root(request: HTTPRequest) -> HTTPResponse:
    return ok()


def echo(request: HTTPRequest) -> HTTPResponse:
    """Reflect everything after /echo/ back as plain text."""
    return ok(request.path[len(ECHO_PREFIX):])


def user_agent(request: HTTPRequest) -> HTTPResponse:
    agent = request.user_agent
    if agent is None:
        return bad_request()
    return ok(agent)


def register_default_routes(router: Router, directory: Optional[str] = None) -> Router:
    """
    Register the built-in handlers on a router.

    The /files/ route is only added when a directory is given.

    Raises:
        ValueError: directory is given but does not exist.
    """
    router.add_exact("/", root)
    router.add_prefix(ECHO_PREFIX, echo)
    router.add_exact("/user-agent", user_agent)

    if directory is not None:
        router.add_prefix(FILES_PREFIX, FileHandler(directory, url_prefix=FILES_PREFIX))
        logger.debug(f"Serving files from {directory}")

    return router
