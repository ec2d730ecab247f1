#!/usr/bin/env python3

from nsecwalker.cli import main

if __name__ == '__main__':
    main()
