"""Run the hot-reload server: ``python main.py``.

Reads PORT / NODE_ENV / DATABASE_URL from .env (or ../.env, or HRS_ENV_FILE)
and keeps watching that file for changes.
"""

from hrs.service import main

if __name__ == "__main__":
    raise SystemExit(main())
