"""
Entry point for the toxstatus CLI when run as a module.

This allows the package to be run with:
python -m toxstatus
"""

from toxstatus.cli import main

if __name__ == "__main__":
    main()
