"""Allow ``python -m crossdeploy``."""

from .cli import main

main()
