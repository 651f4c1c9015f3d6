# -*- coding: utf-8 -*-
"""Allow ``python -m research_monitor``."""

import sys

from research_monitor.cli import main

if __name__ == "__main__":
    sys.exit(main())
