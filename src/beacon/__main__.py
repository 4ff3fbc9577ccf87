"""Main entry point for the Beacon CLI.

Usage:
    python -m beacon --help
    beacon --help  # If installed via pip/uv
"""

from beacon.cli import main

if __name__ == "__main__":
    main()
