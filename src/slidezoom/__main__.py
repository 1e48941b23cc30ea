"""Entry point for ``python -m slidezoom``."""

from slidezoom.export.__main__ import main

if __name__ == "__main__":
    main()
