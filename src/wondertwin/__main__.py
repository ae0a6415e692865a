"""Allow ``python -m wondertwin`` as an alias for ``wt``."""

from wondertwin.cli import main

if __name__ == "__main__":
    main()
