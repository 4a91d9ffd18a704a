import logging
import os

import uvicorn

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  host = os.getenv("SPORELY_HOST", "0.0.0.0")  # noqa: S104
  port = int(os.getenv("SPORELY_PORT", "8002"))
  logger.info("Starting alert service on %s:%s", host, port)
  # Logging handlers are installed by the app lifespan, not by uvicorn.
  uvicorn.run("sporely_alerts.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
  main()
