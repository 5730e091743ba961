#!/usr/bin/env python3
"""
Membership Bot - Entry Point
Точка входа для совместимости с workflow
"""

from membership.main import main
import asyncio

if __name__ == "__main__":
    asyncio.run(main())
