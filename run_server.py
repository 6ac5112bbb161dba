"""Entry point for running the COY backend with Uvicorn."""
from __future__ import annotations

import os

import uvicorn


def main() -> None:
  port = int(os.getenv("COY_SERVER_PORT", "8000"))
  reload = os.getenv("UVICORN_RELOAD", "false").lower() == "true"
  uvicorn.run("app.main:app", host=os.getenv("COY_SERVER_HOST", "0.0.0.0"), port=port, reload=reload)


if __name__ == "__main__":
  main()
