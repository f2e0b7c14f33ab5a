import os
import re

FILE_ORDERINGS = ('alphabetical', 'size', 'modified', 'natural')

_DIGITS = re.compile(r'(\d+)')


def _stat(path: str) -> os.stat_result | None:
    try:
        return os.stat(path)
    except (OSError, ValueError):
        return None


def natural_key(path: str) -> list[tuple[int, int | str]]:
    # 'file2' < 'file10'
    return [(0, int(part)) if part.isdigit() else (1, part.lower()) for part in _DIGITS.split(path) if part]


def order_files(files: list[str], ordering: str = 'alphabetical') -> list[str]:
    # size: smallest first; modified: newest first; unreadable files sort last
    if ordering == 'alphabetical':
        return sorted(files, key=lambda f: (f.lower(), f))
    if ordering == 'natural':
        return sorted(files, key=lambda f: (natural_key(f), f))
    if ordering == 'size':
        stats = {f: _stat(f) for f in files}
        return sorted(files, key=lambda f: (stats[f] is None, stats[f].st_size if stats[f] else 0, f))
    if ordering == 'modified':
        stats = {f: _stat(f) for f in files}
        return sorted(files, key=lambda f: (stats[f] is None, -stats[f].st_mtime if stats[f] else 0, f))
    raise ValueError(f"Unsupported file ordering {ordering} {list(FILE_ORDERINGS)}")
