from __future__ import annotations

import re
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
PACKAGE_DIR = ROOT / "portal"
PROVIDER_PATH = "portal/core/time_provider.py"

PATTERNS = (
    r"\bdatetime\.now\(",
    r"\bdatetime\.utcnow\(",
    r"\bdate\.today\(",
    r"\bdatetime\.today\(",
    r"\btime\.time\(",
)
COMPILED = [re.compile(pattern) for pattern in PATTERNS]


def find_violations(package_dir: Path = PACKAGE_DIR) -> list[tuple[str, int, str]]:
    violations: list[tuple[str, int, str]] = []
    for file_path in sorted(package_dir.rglob("*.py")):
        if file_path.as_posix().endswith(PROVIDER_PATH):
            continue
        for idx, line in enumerate(file_path.read_text(encoding="utf-8").splitlines(), start=1):
            if any(regex.search(line) for regex in COMPILED):
                violations.append((str(file_path.relative_to(ROOT)), idx, line.strip()))
    return violations


def main() -> int:
    violations = find_violations()
    if violations:
        print("Wall-clock reads must go through TimeProvider in portal/:")
        for path, line_no, line in violations:
            print(f" - {path}:{line_no}: {line}")
        return 1

    print("No direct datetime usage detected in portal/.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
