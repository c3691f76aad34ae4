import os
import sys
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
for path in (PROJECT_ROOT, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# Must be set before any service module creates the engine.
os.environ.setdefault("DATABASE_URL", f"sqlite:///{PROJECT_ROOT / 'test_meeting_rooms.db'}")
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("LOG_DIR", str(PROJECT_ROOT / "logs"))
os.environ.pop("REDIS_URL", None)
