"""
=============================================================================
FILE HANDLER
=============================================================================

Serves and stores files under one root directory:

    GET  /files/<name>   → 200 + file bytes (application/octet-stream)
                           404 if there is no such file
    POST /files/<name>   → request body written to <root>/<name>, 201
    anything else        → 405 with "Allow: GET, POST"

Only registered when the server is started with --directory.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /files/../../etc/passwd HTTP/1.1                               │
    │                                                                      │
    │  Unprotected: <root>/../../etc/passwd → /etc/passwd                 │
    │                                                                      │
    │  Our protection:                                                    │
    │  1. Resolve the full path (follow .. and symlinks)                 │
    │  2. Check it is still inside the root directory                    │
    │  3. If not, 403 Forbidden                                          │
    └─────────────────────────────────────────────────────────────────────┘

        full_path = (root_dir / name).resolve()
        full_path.relative_to(root_dir)   # raises ValueError if outside

=============================================================================
"""

from pathlib import Path
from typing import Optional, Union
import logging

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse,
    ResponseBuilder,
    created,
    forbidden,
    internal_error,
    method_not_allowed,
    not_found,
)
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class FileHandler:
    """
    Read and write files below a root directory.

        handler = FileHandler("/tmp/data")
        router.add_prefix("/files/", handler.handle)

    Args:
        root_dir: Directory files are served from and written to.
        url_prefix: Prefix stripped from the request path to get the name.

    Raises:
        ValueError: root_dir is not an existing directory.
    """

    ALLOWED_METHODS = ["GET", "POST"]

    def __init__(self, root_dir: Union[str, Path], url_prefix: str = "/files/"):
        self.root_dir = Path(root_dir).resolve()
        self.url_prefix = url_prefix

        if not self.root_dir.is_dir():
            raise ValueError(f"File root directory does not exist: {root_dir}")

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        if request.method not in self.ALLOWED_METHODS:
            return method_not_allowed(self.ALLOWED_METHODS)

        name = request.path
        if name.startswith(self.url_prefix):
            name = name[len(self.url_prefix):]

        full_path = self._resolve(name)
        if full_path is None:
            return forbidden()

        if full_path == self.root_dir:
            return not_found()

        if request.method == "POST":
            return self._write_file(full_path, name, request.body)
        return self._read_file(full_path)

    def _resolve(self, name: str) -> Optional[Path]:
        """Full path for a name, or None if it escapes the root."""
        full_path = (self.root_dir / name.lstrip("/")).resolve()
        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {name}")
            return None
        return full_path

    def _read_file(self, path: Path) -> HTTPResponse:
        if not path.is_file():
            return not_found()

        try:
            content = path.read_bytes()
        except PermissionError:
            return forbidden()
        except OSError as e:
            logger.error(f"Error reading file {path}: {e}")
            return internal_error()

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .binary(content)
            .build())

    def _write_file(self, path: Path, name: str, body: bytes) -> HTTPResponse:
        if path.is_dir():
            return forbidden()

        try:
            path.write_bytes(body)
        except FileNotFoundError:
            # Parent directory does not exist
            return not_found()
        except PermissionError:
            return forbidden()
        except OSError as e:
            logger.error(f"Error writing file {path}: {e}")
            return internal_error()

        logger.debug(f"Wrote {len(body)} bytes to {path}")
        return created(location=self.url_prefix + name.lstrip("/"))
