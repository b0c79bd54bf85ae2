import fnmatch
import re
from typing import Union


def path_is_match(path: Union[str, list[str]], request_path: str) -> bool:
    """Check if request path matches the specified path pattern(s).

    Supports:
    - Exact matching: "/api/users"
    - Glob patterns: "/api/users/*", "/api/*/profile"
    - Regex patterns (prefix with 'regex:'): "regex:^/api/users/\\d+$"
    - List of any of the above

    Args:
        path: Path pattern(s) to match against
        request_path: Actual request path

    Returns:
        bool: True if any pattern matches the request path
    """

    def match_single_pattern(pattern: str) -> bool:
        if pattern.startswith("regex:"):
            return bool(re.match(pattern[len("regex:") :], request_path))
        if any(char in pattern for char in "*?["):
            return fnmatch.fnmatchcase(request_path, pattern)
        return pattern == request_path

    if isinstance(path, str):
        return match_single_pattern(path)
    if isinstance(path, list):
        return any(match_single_pattern(p) for p in path)
    return False
