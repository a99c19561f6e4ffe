from __future__ import annotations

import sys
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
SDK_SRC = TESTS_DIR.parent / "src"

for path in (SDK_SRC, TESTS_DIR):
    sys.path.insert(0, str(path))
