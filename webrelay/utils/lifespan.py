from typing import Awaitable, Callable, Optional

from starlette.types import Receive, Send


async def serve_lifespan(
    receive: Receive,
    send: Send,
    on_shutdown: Optional[Callable[[], Awaitable[None]]] = None,
) -> None:
    """Answer the ASGI lifespan protocol, running ``on_shutdown`` before exiting."""
    while True:
        message = await receive()
        if message["type"] == "lifespan.startup":
            await send({"type": "lifespan.startup.complete"})
        elif message["type"] == "lifespan.shutdown":
            if on_shutdown is not None:
                await on_shutdown()
            await send({"type": "lifespan.shutdown.complete"})
            return
