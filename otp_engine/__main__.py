"""Allow ``python -m otp_engine <subcommand>``."""

import sys

from otp_engine.otp_cli import main

if __name__ == "__main__":
    sys.exit(main())
