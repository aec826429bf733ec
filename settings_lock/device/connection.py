"""
Global device command lock.

The device processes xAPI requests in the order it receives them, but
concurrent HTTP requests may arrive out of order.  Every outbound command
acquires ``command_lock`` first so that the commands issued by one handler
reach the device strictly top-to-bottom, and the bootstrap worker never
interleaves with the dispatcher.

Usage
-----
    from settings_lock.device.connection import command_lock

    async with command_lock:
        response = await http.post("/putxml", content=body)
"""

import asyncio

# Module-level lock: created once, shared across the entire process.
command_lock: asyncio.Lock = asyncio.Lock()
