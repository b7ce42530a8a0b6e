#!/usr/bin/env python3

import os
import logging
import asyncio
import yeelight_lan_protocol as yeelight

#logging.basicConfig(level=logging.DEBUG)

async def amain():
    # Use $YEELIGHT_HOST if set; otherwise take the first device that answers a search
    host = os.getenv("YEELIGHT_HOST")
    if host:
        device = yeelight.YeelightDevice.from_address(host)
    else:
        device = await yeelight.YeelightDevice.discover()
    print(await device.refresh_state())
    async with await device.listen() as stream:
        # Runs until the device closes the connection; press Ctrl-C to stop earlier
        async for notification in stream:
            print(notification)

loop = asyncio.new_event_loop()
try:
    asyncio.set_event_loop(loop)
    loop.run_until_complete(amain())
finally:
    loop.close()
