import os
from typing import Optional


def resolve_path(root: str, sub_path: str) -> Optional[str]:
    """
    Resolve ``sub_path`` under ``root``.

    Returns the real path of a regular file inside ``root``, or None when the
    path escapes the directory (``..`` segments, absolute paths, symlinks
    pointing outside) or does not name a regular file.
    """
    try:
        root = os.path.realpath(root)
        candidate = os.path.realpath(os.path.join(root, sub_path.lstrip("/")))
        if os.path.commonpath([root, candidate]) != root:
            return None
        if not os.path.isfile(candidate):
            return None
    except ValueError:
        # Embedded null bytes, mixed drives
        return None
    return candidate
