"""Allow ``python -m depmirror``."""

from .cli import main

if __name__ == "__main__":
    main()
