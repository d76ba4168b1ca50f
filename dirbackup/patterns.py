"""Glob pattern matching used for exclusions and artifact discovery."""

import fnmatch
from pathlib import PurePath
from typing import Iterable, Protocol, Tuple, Union


PathLike = Union[str, PurePath]


class PathMatcher(Protocol):
    """Anything that can decide whether a path is selected."""

    def matches(self, path: PathLike) -> bool:
        ...


class ExcludeMatcher:
    """
    Matches a relative path when any exclude pattern matches one of its
    trailing sub-paths or a single component. Patterns are unanchored
    like tar's default ``--exclude``: ``b/c`` matches ``a/b/c`` but not
    ``a/c``.

    A trailing ``/`` on a pattern is dropped, so ``node_modules/`` and
    ``node_modules`` are equivalent.
    """

    def __init__(self, patterns: Iterable[str]):
        self.patterns: Tuple[str, ...] = tuple(
            p.rstrip("/") for p in patterns if p.strip().rstrip("/")
        )

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def matches(self, path: PathLike) -> bool:
        if not self.patterns:
            return False
        pure = PurePath(path)
        parts = pure.parts
        candidates = (pure.as_posix(),) + tuple(
            "/".join(parts[i:]) for i in range(1, len(parts))
        ) + parts
        for pattern in self.patterns:
            for candidate in candidates:
                if fnmatch.fnmatchcase(candidate, pattern):
                    return True
        return False


class NameMatcher:
    """Matches on the final path component only."""

    def __init__(self, pattern: str):
        self.pattern = pattern

    def matches(self, path: PathLike) -> bool:
        return fnmatch.fnmatchcase(PurePath(path).name, self.pattern)
