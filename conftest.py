"""Root conftest: pins the test environment before chat_mirror.config is imported."""
from __future__ import annotations

import os
from pathlib import Path


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


# Test values win over the developer's shell so a real token never leaks in.
os.environ.pop("GROUPME_TOKEN", None)
os.environ.update(_read_env_file(Path(__file__).resolve().parent / ".env.test"))
