from __future__ import annotations

import sys
from pathlib import Path

# Ensure the package and the CLI scripts are importable without installation
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
SCRIPTS_DIR = ROOT / "scripts"
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from fixtures import efetch_xml_factory  # noqa: E402,F401
