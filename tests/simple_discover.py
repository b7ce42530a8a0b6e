#!/usr/bin/env python3

import logging
import asyncio
import yeelight_lan_protocol as yeelight

#logging.basicConfig(level=logging.DEBUG)

async def amain():
    # all parameters to DiscoveryClient are optional; they allow you to set the IP addresses to bind to, etc.
    async with yeelight.DiscoveryClient() as client:
        # Entering the client.search() context manager sends the multicast search request from every local address.
        async with client.search() as search_request:
            # iter_responses() yields DiscoveryResponseInfo objects as they come in, until the wait time has
            # elapsed. Unparsable and repeated responses are skipped.
            async for response_info in search_request.iter_responses():
                print(response_info.descriptor)
                # It is possible to exit the loop early here if you found what you're looking for

loop = asyncio.new_event_loop()
try:
    asyncio.set_event_loop(loop)
    loop.run_until_complete(amain())
finally:
    loop.close()
