from __future__ import annotations

import asyncio
import logging
import signal

import uvicorn

from git_statusline.api import create_app
from git_statusline.config import load_options
from git_statusline.logging_setup import configure_logging
from git_statusline.service import StatusService

__VERSION__ = "0.1.0"


async def main() -> None:
    options = load_options()
    configure_logging(options)

    service = StatusService(options)
    logging.getLogger(__name__).info(
        "Git statusline starting | version=%s | cwd=%s | fetch_interval=%s | timeout=%sms",
        __VERSION__,
        service.engine.cwd,
        options.auto_fetch_interval,
        options.status_timeout,
    )
    app = create_app(service)
    http_port = options.http_api_port
    server: uvicorn.Server | None = None
    if http_port > 0:
        config = uvicorn.Config(app, host=options.http_host, port=http_port, log_level="info")
        server = uvicorn.Server(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown_signal() -> None:
        if server:
            server.should_exit = True
        loop.create_task(service.shutdown())
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown_signal)

    async with asyncio.TaskGroup() as tg:
        tg.create_task(service.run())
        if server:
            tg.create_task(server.serve())
        tg.create_task(stop_event.wait())


if __name__ == "__main__":
    asyncio.run(main())
