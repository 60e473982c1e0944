"""Allow running as `python -m opencode_stack`."""

from .main import main

if __name__ == "__main__":
    main()
