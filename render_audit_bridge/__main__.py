# Allows the package to be run as a script using `python -m render_audit_bridge`

from __future__ import annotations

import sys

from render_audit_bridge.cli import main

if __name__ == "__main__":
    sys.exit(main())
