"""
This is a minimal entry point script for the demo daemon.

Its sole responsibility is to instantiate the DemoDaemon and hand it the
command line. Run it with `python -m procpool.script_entry.demo -n` to keep
it in the foreground.
"""
import sys
from procpool.demo import DemoDaemon


def main() -> None:
    sys.exit(DemoDaemon().execute(sys.argv[1:]))


if __name__ == "__main__":
    main()
