"""Kernel transport entry point.

Supports: python -m kernel_transport -- COMMAND [ARGS...]
"""

from .app import main

if __name__ == "__main__":
    main()
