import asyncio
import json

import httpx

async def main():
    url = "http://localhost:8000/events/"
    async with httpx.AsyncClient(timeout=None) as client:
        async with client.stream("GET", url) as resp:
            print("Awaiting messages... (press Ctrl+C to exit)")
            buffer = ""
            async for chunk in resp.aiter_text():
                buffer += chunk
                # units are separated by a blank line
                while "\n\n" in buffer:
                    unit, buffer = buffer.split("\n\n", 1)
                    if unit.strip():
                        print("Received:", json.loads(unit))

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Disconnected.")
