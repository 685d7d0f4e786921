"""Project root entry point for launching the status web interface."""

from __future__ import annotations

import os
from pathlib import Path


def main():
    from transmem.web import create_app

    base_dir = Path(os.environ.get("TRANSMEM_HOME", Path.cwd()))
    app = create_app(base_dir)
    app.run(host="0.0.0.0", port=int(os.environ.get("TRANSMEM_PORT", 5500)), debug=False)


if __name__ == "__main__":
    main()
