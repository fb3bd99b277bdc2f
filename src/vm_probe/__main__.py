#!/usr/bin/env python3
"""vmprobe - Module entry point."""
import sys

from vm_probe.cli import main

if __name__ == "__main__":
    sys.exit(main())
