"""Entry point for ``python -m cfgprof``."""

from cfgprof.main import main

if __name__ == "__main__":
    raise SystemExit(main())
