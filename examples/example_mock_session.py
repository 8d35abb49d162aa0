# Run a short session against a server started with:
#   ivcell server -n mock
import asyncio

import ivcell.server
import ivcell.session
import ivcell.util

NUM_READINGS = 5

ivcell.util.start_client_log(log_to_stdout=True, log_level="INFO")


async def main():
    manager = ivcell.server.ConnectionManager()
    await manager.connect()  # default host and port

    async with ivcell.session.Session(manager, period=0.5) as session:
        if not await session.controller.open_driver():
            print(session.view().driver_message)
            return
        if not await session.controller.connect_device(True):
            print(session.view().device_error_text)
            return
        await session.controller.set_cell_status(True)

        readings = asyncio.Queue()
        session.poller.add_listener(readings.put_nowait)
        for _ in range(NUM_READINGS):
            reading = await readings.get()
            if reading.fresh:
                print(f"{ivcell.session.format_potential(reading.value)} V")

        await session.controller.set_cell_status(False)
    # driver closed here

    manager.disconnect()


asyncio.run(main())
