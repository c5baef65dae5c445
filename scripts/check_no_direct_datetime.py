from __future__ import annotations

import re
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
PACKAGE_DIR = ROOT / 'fieldtrack'

PATTERNS = (
    r'\bdatetime\.now\(',
    r'\bdatetime\.utcnow\(',
    r'\bdate\.today\(',
    r'\bdatetime\.today\(',
)
COMPILED = [re.compile(pattern) for pattern in PATTERNS]


def _is_excluded(path: Path) -> bool:
    return path.as_posix().endswith('fieldtrack/core/time_provider.py')


def find_violations() -> list[tuple[str, int, str]]:
    violations: list[tuple[str, int, str]] = []
    for file_path in PACKAGE_DIR.rglob('*.py'):
        if _is_excluded(file_path):
            continue
        for idx, line in enumerate(file_path.read_text(encoding='utf-8').splitlines(), start=1):
            if any(regex.search(line) for regex in COMPILED):
                violations.append((str(file_path.relative_to(ROOT)), idx, line.strip()))
    return violations


def main() -> int:
    violations = find_violations()
    if violations:
        print('Direct datetime usage is not allowed in fieldtrack/; use the TimeProvider:')
        for path, line_no, line in violations:
            print(f' - {path}:{line_no}: {line}')
        return 1

    print('No direct datetime usage detected in fieldtrack/.')
    return 0


if __name__ == '__main__':
    sys.exit(main())
