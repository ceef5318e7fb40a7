#!/usr/bin/env python3

from syncmynus.cli import main

if __name__ == "__main__":
    main()
