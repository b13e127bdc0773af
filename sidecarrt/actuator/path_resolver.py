"""Walks the segments of an HTTP path one at a time."""

from __future__ import annotations

HTTP_SUCCESS_CODE = 200
HTTP_NOT_FOUND_CODE = 404
HTTP_UNAVAILABLE_CODE = 503


class PathResolver:
    """Yields the segments of a path such as ``/a/b/c`` in order."""

    def __init__(self, path: str) -> None:
        self.raw_path = path
        self._unresolved = path

    def has_next(self) -> bool:
        """Whether any segment is left to resolve."""
        path = self._unresolved
        return path not in ("", "/", "\\")

    def next(self) -> str:
        """Return the next segment, or an empty string when none is left."""
        if not self.has_next():
            return ""
        path = self._unresolved[1:]
        segment, slash, rest = path.partition("/")
        self._unresolved = slash + rest
        return segment

    def unresolved_path(self) -> str:
        """The part of the path not resolved yet, starting with '/'."""
        return self._unresolved