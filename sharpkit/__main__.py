"""
Entry point for running SharpKit CLI as a module.

Usage: python -m sharpkit [command] [options]
"""

from sharpkit.cli.parser import main

if __name__ == "__main__":
    main()
