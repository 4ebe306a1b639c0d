"""Main entry point when executing xfcache as a package.

This allows running the package using python -m xfcache.
"""

from xfcache.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
