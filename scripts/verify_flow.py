import asyncio
import httpx
import websockets
import json
import logging

import os

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

BASE_URL = os.getenv("BASE_URL", "http://localhost:8080")
WS_URL = os.getenv("WS_URL", "ws://localhost:8080")


async def check_health(client):
    try:
        resp = await client.get(f"{BASE_URL}/health")
        if resp.status_code == 200:
            logger.info(f"Relay healthy: {resp.json()}")
            return True
        logger.error(f"Health check failed: {resp.status_code} {resp.text}")
        return False
    except Exception as e:
        logger.error(f"Request Error (Health): {e}")
        return False


async def connect_user(user_id, event_queue, outbox):
    ws_url = f"{WS_URL}/call-signaling?userId={user_id}"
    logger.info(f"Connecting to relay: {ws_url}")
    try:
        async with websockets.connect(ws_url) as ws:
            logger.info(f"Connected to relay ({user_id})")

            async def sender():
                while True:
                    message = await outbox.get()
                    await ws.send(json.dumps(message))

            send_task = asyncio.create_task(sender())
            try:
                async for msg in ws:
                    data = json.loads(msg)
                    logger.info(f"[{user_id}] WS Message: {data['type']}")
                    await event_queue.put(data)
            finally:
                send_task.cancel()

    except Exception as e:
        logger.error(f"Relay Error ({user_id}): {e}")


async def wait_for_event(queue, event_type, timeout=5.0):
    while True:
        event = await asyncio.wait_for(queue.get(), timeout=timeout)
        if event['type'] == event_type:
            return event


async def run_scenario():
    async with httpx.AsyncClient() as client:
        # 1. Relay up?
        if not await check_health(client):
            return

        # 2. Connect A and B
        events_a, outbox_a = asyncio.Queue(), asyncio.Queue()
        events_b, outbox_b = asyncio.Queue(), asyncio.Queue()
        task_a = asyncio.create_task(connect_user("verify-a", events_a, outbox_a))
        task_b = asyncio.create_task(connect_user("verify-b", events_b, outbox_b))

        try:
            await wait_for_event(events_a, "connection-established")
            await wait_for_event(events_b, "connection-established")

            # 3. Both visible in presence
            resp = await client.get(f"{BASE_URL}/api/presence")
            online = {u["userId"] for u in resp.json()}
            if {"verify-a", "verify-b"} <= online:
                logger.info("SUCCESS: both users in presence snapshot")
            else:
                logger.error(f"FAILED: presence is {online}")
                return

            # 4. A offers, B receives it stamped with A's identity
            await outbox_a.put({
                "type": "call-offer",
                "targetUserId": "verify-b",
                "offer": {"type": "offer", "sdp": "v=0"}
            })
            event = await wait_for_event(events_b, "call-offer")
            if event.get("fromUserId") == "verify-a":
                logger.info("SUCCESS: B received call-offer from A")
            else:
                logger.error(f"FAILED: unexpected offer {event}")

            # 5. B hangs up, A receives call-end
            await outbox_b.put({"type": "call-end", "targetUserId": "verify-a"})
            await wait_for_event(events_a, "call-end")
            logger.info("SUCCESS: A received call-end")

            # 6. Offer to an offline identity is refused
            await outbox_a.put({
                "type": "call-offer",
                "targetUserId": "verify-nobody",
                "offer": {"type": "offer", "sdp": "v=0"}
            })
            event = await wait_for_event(events_a, "call-error")
            logger.info(f"SUCCESS: offline target refused ({event.get('message')})")

        except asyncio.TimeoutError:
            logger.error("FAILED: Timeout waiting for relay event.")

        finally:
            task_a.cancel()
            task_b.cancel()


if __name__ == "__main__":
    asyncio.run(run_scenario())
