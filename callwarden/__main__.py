"""Main entry point when executing callwarden as a package.

This allows running the package using python -m callwarden.
"""

from callwarden.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
