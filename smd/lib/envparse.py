"""
Safe smd.env parser.

Reads KEY=value settings without handing anything to a shell, so a
settings file copied between machines can never run commands.
"""

import re
from pathlib import Path

# Shell constructs that have no business in a settings value
FORBIDDEN_PATTERNS = [
    re.compile(r'`'),
    re.compile(r'\$\('),
    re.compile(r'\$\{'),
    re.compile(r';'),
    re.compile(r'&&'),
    re.compile(r'\|'),
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def parse_env(text: str, source: str = "<string>") -> dict[str, str]:
    """
    Parse KEY=value lines.

    Blank lines and lines starting with '#' are ignored. An optional
    leading 'export ' is accepted so files can double as shell snippets.

    Raises:
        ValueError: on a malformed line, bad key, or forbidden value
    """
    result = {}

    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('export '):
            line = line[len('export '):].lstrip()

        key, sep, value = line.partition('=')
        if not sep:
            raise ValueError(f"{source}:{lineno}: expected KEY=value")

        key = key.strip()
        if not KEY_PATTERN.match(key):
            raise ValueError(f"{source}:{lineno}: invalid key '{key}'")

        value = _unquote(value.strip())
        if any(p.search(value) for p in FORBIDDEN_PATTERNS):
            raise ValueError(f"{source}:{lineno}: forbidden shell syntax in value for {key}")

        result[key] = value

    return result


def load_env(path: Path, required: bool = True) -> dict[str, str]:
    """
    Load an env file from disk.

    Returns an empty dict for a missing file when required is False.

    Raises:
        FileNotFoundError: if the file is missing and required
        ValueError: if the file content is invalid
    """
    if not path.exists():
        if required:
            raise FileNotFoundError(f"Env file not found: {path}")
        return {}
    return parse_env(path.read_text(), source=str(path))
