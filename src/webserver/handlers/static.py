"""
=============================================================================
STATIC FILE RESOLVER
=============================================================================

Maps a request path to a file under the served root and reads it.

    request path        served root = /srv/www
    ────────────        ──────────────────────────────
    /index.html    →    /srv/www/index.html
    /css/site.css  →    /srv/www/css/site.css
    /docs/         →    /srv/www/docs/index.html  (directory index)
    /missing.html  →    ResourceNotFoundError     → 404
    /secret.txt    →    FileReadError (EACCES)    → 500

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /../../../etc/passwd HTTP/1.1

Naively joined this reads /etc/passwd. The resolver resolves the full
path (following .. and symlinks) and checks it is still inside the root:

    full_path = (root_dir / user_input).resolve()
    full_path.relative_to(root_dir)  # Raises if outside root!

A path that escapes the root is reported as NOT FOUND, so the response
does not even confirm the file exists.

=============================================================================
"""

import logging
from pathlib import Path

from ..errors import FileReadError, ResourceNotFoundError


logger = logging.getLogger(__name__)


class StaticFileResolver:
    """
    Reads files from a served root directory.

    Usage:
        resolver = StaticFileResolver("www")
        content = resolver.read("/index.html")
    """

    def __init__(self, root_dir: str, index_file: str = "index.html"):
        """
        Args:
            root_dir: Directory to serve. Need not exist yet; every lookup
                      then reports not found.
            index_file: File served for directory paths.
        """
        # Resolve once so the containment check compares absolute paths
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file

    def resolve(self, path: str) -> Path:
        """
        Map ``path`` to a filesystem path inside the root.

        Raises:
            ResourceNotFoundError: If the path escapes the root or does not exist.
            FileReadError: If the filesystem refuses the lookup (symlink
                           loop, unsearchable directory).
        """
        try:
            full_path = (self.root_dir / path.lstrip("/")).resolve()
        except ValueError as e:
            # e.g. an embedded NUL byte in the path
            raise ResourceNotFoundError(f"File not found: {path!r}") from e
        except (OSError, RuntimeError) as e:
            # RuntimeError: symlink loop before Python 3.13
            logger.error(f"Error resolving {path}: {e}")
            raise FileReadError(f"Failed to resolve {path}: {e}") from e

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {path}")
            raise ResourceNotFoundError(f"File not found: {path}")

        try:
            if full_path.is_dir():
                full_path = full_path / self.index_file
            found = full_path.exists()
        except OSError as e:
            logger.error(f"Error accessing {full_path}: {e}")
            raise FileReadError(f"Failed to access {path}: {e}") from e

        if not found:
            raise ResourceNotFoundError(f"File not found: {path}")

        return full_path

    def read(self, path: str) -> bytes:
        """
        Return the full content of the file at ``path``.

        Raises:
            ResourceNotFoundError: The file does not exist.
            FileReadError: The file exists but could not be read.
        """
        full_path = self.resolve(path)

        try:
            return full_path.read_bytes()
        except FileNotFoundError as e:
            # Deleted between resolve() and read
            raise ResourceNotFoundError(f"File not found: {path}") from e
        except OSError as e:
            logger.error(f"Error reading file {full_path}: {e}")
            raise FileReadError(f"Failed to read {path}: {e}") from e
