#!/usr/bin/env python3
"""
Chain Bridge - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
The one executable entry point for the bridge worker.

- Compatible with PM2 / systemd process management
- Can be started, stopped, and restarted safely
- SIGINT / SIGTERM drain the in-flight cycle

============================================================
USAGE
============================================================
Direct execution:
    python app.py

With PM2:
    pm2 start app.py --interpreter python --name chain-bridge

Environment-based configuration (.env supported):
    BRIDGE_MONITORED_ACCOUNT=25638 DATABASE_URL=postgresql+asyncpg://... python app.py

============================================================
"""

import sys

from orchestrator.cli import main


if __name__ == "__main__":
    sys.exit(main())
