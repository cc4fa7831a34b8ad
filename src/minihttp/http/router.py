"""
=============================================================================
URL ROUTER
=============================================================================

Maps a request path to a handler function. Two kinds of route:

- EXACT paths:   "/"          matches only "/"
                 "/user-agent" matches only "/user-agent"
- PREFIX paths:  "/echo/"     matches "/echo/abc", "/echo/", "/echo/a/b"

=============================================================================
MATCHING ORDER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GET /files/logs/today.txt                                          │
    │        │                                                             │
    │        ▼                                                             │
    │   1. Exact table          {"/": root, "/user-agent": ua}             │
    │        │ no hit                                                      │
    │        ▼                                                             │
    │   2. Prefixes, longest first                                         │
    │        "/files/logs/"  → logs_handler   ← MATCH (longest wins)       │
    │        "/files/"       → files_handler                               │
    │        "/echo/"        → echo_handler                                │
    │        │ no hit                                                      │
    │        ▼                                                             │
    │   3. Not-found handler    → 404                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Prefixes are plain string prefixes, not path segments: "/echo" would also
match "/echoes". Register "/echo/" if that matters.

Routing ignores the method. Handlers that care (the files handler) check
request.method themselves and answer 405.

=============================================================================
FREEZING
=============================================================================

Every connection thread reads the route table concurrently. Rather than
lock it, the server calls freeze() before accepting the first connection.
After that the table never changes and registration raises RuntimeError.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .request import HTTPRequest
from .response import HTTPResponse, not_found


# Handler: a function that takes a request and returns a response.
# This is the signature every route handler must follow.
Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass(frozen=True)
class Route:
    """A registration, as reported by Router.routes()."""

    kind: str        # "exact" or "prefix"
    path: str
    handler: Handler

    @property
    def handler_name(self) -> str:
        return getattr(self.handler, "__name__", repr(self.handler))


def default_not_found(request: HTTPRequest) -> HTTPResponse:
    """404 with an empty body."""
    return not_found()


class Router:
    """
    Exact and longest-prefix path router.

        router = Router()

        @router.exact("/")
        def root(request):
            return ok()

        @router.prefix("/echo/")
        def echo(request):
            return ok(request.path[len("/echo/"):])

        response = router.handle(request)
    """

    def __init__(self, not_found_handler: Optional[Handler] = None):
        self._exact: Dict[str, Handler] = {}
        # (prefix, handler), kept sorted by descending prefix length
        self._prefixes: List[Tuple[str, Handler]] = []
        self.not_found_handler: Handler = not_found_handler or default_not_found
        self._frozen = False

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_exact(self, path: str, handler: Handler) -> None:
        """Register a handler for one exact path. Replaces any earlier one."""
        self._check_mutable()
        self._exact[path] = handler

    def add_prefix(self, prefix: str, handler: Handler) -> None:
        """Register a handler for every path starting with prefix."""
        self._check_mutable()
        self._prefixes = [(p, h) for p, h in self._prefixes if p != prefix]
        self._prefixes.append((prefix, handler))
        # sort() is stable, so equal lengths keep registration order
        self._prefixes.sort(key=lambda entry: len(entry[0]), reverse=True)

    def exact(self, path: str) -> Callable[[Handler], Handler]:
        """Decorator form of add_exact()."""
        def decorator(handler: Handler) -> Handler:
            self.add_exact(path, handler)
            return handler
        return decorator

    def prefix(self, prefix: str) -> Callable[[Handler], Handler]:
        """Decorator form of add_prefix()."""
        def decorator(handler: Handler) -> Handler:
            self.add_prefix(prefix, handler)
            return handler
        return decorator

    def freeze(self) -> None:
        """Make the route table read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Cannot register routes after the server has started")

    # =========================================================================
    # MATCHING
    # =========================================================================

    def match(self, path: str) -> Handler:
        """
        Find the handler for a path.

        Exact routes win over prefix routes; among prefixes the longest
        match wins. Never returns None: unmatched paths get the
        not-found handler.
        """
        handler = self._exact.get(path)
        if handler is not None:
            return handler

        for prefix, handler in self._prefixes:
            if path.startswith(prefix):
                return handler

        return self.not_found_handler

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Route a request and call its handler."""
        return self.match(request.path)(request)

    def routes(self) -> List[Route]:
        """All registrations, exact routes first, for startup logging."""
        listed = [Route("exact", path, handler) for path, handler in self._exact.items()]
        listed.extend(Route("prefix", prefix, handler) for prefix, handler in self._prefixes)
        return listed
