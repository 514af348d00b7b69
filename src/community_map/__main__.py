"""Entry point for running community-map as a module.

Usage:
    python -m community_map [command] [options]
"""

from community_map.cli import main

if __name__ == "__main__":
    main()
