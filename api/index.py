"""Vercel entrypoint: exposes the WSGI app as ``app``."""

import sys
import traceback
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

try:
    from app import create_app
    app = create_app()
except Exception:
    traceback.print_exc(file=sys.stderr)
    raise
