#!/usr/bin/env python3
"""
CodeCube SSH pastebin server.

Connect with any SSH client, press X to store a paste under a short ID or R
to fetch one back.
"""

from codecube.main import main

if __name__ == "__main__":
    main()
