"""
Entry point for running SharpKit CLI as a module.

Usage: python -m sharpkit.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
