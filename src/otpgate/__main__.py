"""Allow ``python -m otpgate``."""

from otpgate.cli import main

main()
