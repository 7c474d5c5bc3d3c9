"""Main entry point when executing shiplink as a package.

This allows running the package using python -m shiplink.
"""

from shiplink.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
