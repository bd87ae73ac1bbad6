"""Flowsmith CLI bootstrap."""

from __future__ import annotations

from flowsmith.cli import app

if __name__ == "__main__":
    app()
