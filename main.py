import asyncio
import signal

from core.initialization import initialize_components, load_configuration
from utils.logger import setup_logger


async def run_bot() -> None:
    """
    Entrypoint coroutine for the anomaly bot.

    Loads the configuration, configures a dedicated logger and starts the
    trading core.  The logger is created before any component so console and
    file handlers are attached before the first asynchronous work begins;
    every component logs through a child of it.
    """
    config = load_configuration()
    logger = setup_logger("AnomalyBot", to_console=True)

    components = initialize_components(config, logger=logger)
    core = components["core"]

    # SIGINT/SIGTERM stop the scheduler; the core then flushes and saves
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, main_task.cancel)
        except NotImplementedError:  # Windows
            pass

    try:
        await core.run()
    except asyncio.CancelledError:
        logger.info("Shutdown requested")
        await core.stop()


def main():
    try:
        asyncio.run(run_bot())
    except Exception as e:
        print(f"❌ Bot terminated due to error: {e}")


if __name__ == "__main__":
    main()
