#!/usr/bin/env python3
"""Check that ``llumiverse.__version__`` matches the version in pyproject.toml.

Exit codes:
    0: Versions match
    1: Version mismatch or missing version
"""

import re
import sys
import tomllib
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
INIT_FILE = PROJECT_ROOT / "src" / "llumiverse" / "__init__.py"
PYPROJECT_FILE = PROJECT_ROOT / "pyproject.toml"

_VERSION_RE = re.compile(r'^__version__\s*=\s*["\']([^"\']+)["\']', re.MULTILINE)


def read_init_version(init_file: Path) -> str | None:
    match = _VERSION_RE.search(init_file.read_text(encoding="utf-8"))
    return match.group(1) if match else None


def read_pyproject_version(pyproject_file: Path) -> str | None:
    try:
        data = tomllib.loads(pyproject_file.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError:
        return None
    version = data.get("project", {}).get("version")
    return version if isinstance(version, str) else None


def main() -> int:
    for path in (INIT_FILE, PYPROJECT_FILE):
        if not path.exists():
            print(f"Error: {path} not found", file=sys.stderr)
            return 1

    package_version = read_init_version(INIT_FILE)
    project_version = read_pyproject_version(PYPROJECT_FILE)
    if package_version is None or project_version is None:
        print("Error: could not read both versions", file=sys.stderr)
        return 1

    if package_version != project_version:
        print(
            f"Version mismatch: __init__.py has {package_version}, "
            f"pyproject.toml has {project_version}",
            file=sys.stderr,
        )
        return 1

    print(f"Version check passed: {package_version}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
