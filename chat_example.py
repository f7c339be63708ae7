"""
Example chat client
Connects as a user, watches a channel and echoes new messages to the log
"""

import asyncio
import logging
import os

from streamchat_api import StreamChatClient, ClientOptions, ChatAPIError, HandshakeError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def main():
    """Main example function"""
    api_key = os.environ["STREAM_API_KEY"]
    secret = os.environ["STREAM_API_SECRET"]
    user_id = os.getenv("STREAM_USER_ID", "example-user")

    client = StreamChatClient(api_key, secret=secret, options=ClientOptions.from_env())

    @client.on("connection.changed")
    def on_connection_changed(event):
        logger.info(f"Connection online: {event.get('online')}")

    @client.on("connection.recovered")
    def on_recovered(event):
        logger.info("Connection recovered, channel state is up to date")

    try:
        await client.set_user({"id": user_id, "name": "Example User"}, client.create_token(user_id))
    except HandshakeError as e:
        logger.error(f"Connection rejected: {e}")
        return

    channel = client.channel("messaging", "example-room", {"name": "Example Room"})

    @channel.on("message.new")
    async def on_message(event):
        message = event.message
        logger.info(f"💬 {message.user_id}: {message.text}")

    @channel.on("typing.start")
    def on_typing(event):
        logger.info(f"✏️ {event.user_id} is typing")

    try:
        await channel.watch()
        await channel.send_message({"text": "Hello from the example client"})
    except ChatAPIError as e:
        logger.error(f"Request failed: {e}")
        await client.disconnect()
        return

    logger.info(f"Watching {channel.cid} with {len(channel.state.messages)} messages")

    try:
        while True:
            await asyncio.sleep(1)
    finally:
        logger.info("Stopping client...")
        await client.disconnect()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Program interrupted by user")
