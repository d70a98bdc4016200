"""Query key canonicalization."""

from collections.abc import Sequence

from livequery.errors import InvalidQueryKeyError
from livequery.types import QueryKey

KEY_DELIMITER = "-"


def canonical_key(key: QueryKey) -> str:
    """
    Normalize a query key to the string used for store lookups.

    A string is a single-segment key; a sequence of segments is joined
    with KEY_DELIMITER. Both shapes of the same logical key map to the
    same entry:

        canonical_key("projects")            # "projects"
        canonical_key(["projects", "42"])    # "projects-42"
        canonical_key(("projects", 42))      # "projects-42"
    """
    segments: Sequence[object] = (key,) if isinstance(key, str) else key
    if not isinstance(segments, Sequence) or len(segments) == 0:
        raise InvalidQueryKeyError(f"Invalid query key: {key!r}")

    canonical = KEY_DELIMITER.join(str(segment) for segment in segments)
    if not canonical:
        raise InvalidQueryKeyError(f"Invalid query key: {key!r}")
    return canonical
