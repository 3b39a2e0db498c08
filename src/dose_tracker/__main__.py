"""Punto de entrada: python -m dose_tracker."""

from __future__ import annotations

from dose_tracker.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
