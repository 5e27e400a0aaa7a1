import asyncio
from datetime import datetime, timezone

import httpx

async def main():
    url = "http://localhost:8000/post/"
    async with httpx.AsyncClient() as client:
        # publish a test message to the channel
        msg = {
            "content": "hello from the publisher example",
            "author": "publisher",
            "time": datetime.now(timezone.utc).isoformat(),
        }
        print("Client Message: ", msg)
        resp = await client.post(url, json=msg)
        print("Server:", resp.status_code, resp.text)

if __name__ == "__main__":
    asyncio.run(main())
