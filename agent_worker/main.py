import logging

from dotenv import load_dotenv

from agent_worker.config import get_settings
from agent_worker.logging_setup import configure_logging
from agent_worker.otel_setup import init_tracing
from agent_worker.server import run_fastapi_server

logger = logging.getLogger("agent_worker")


def main() -> None:
    # OTEL_* variables are also read straight from the environment by the SDK
    load_dotenv()
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    if settings.OTEL_ENABLED:
        try:
            init_tracing(settings)
        except Exception:
            logger.error("OpenTelemetry initialization failed; continuing without export", exc_info=True)

    run_fastapi_server(settings)


if __name__ == "__main__":
    main()
