#!/usr/bin/env python3
"""
Closure Studio Bot - Entry Point

Keeps the Closure Studio game event stream open and forwards game log
messages to Telegram. The actual implementation is in the closurebot package.
"""

if __name__ == "__main__":
    from closurebot import main
    main()
