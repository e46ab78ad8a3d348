"""
Entry point: python -m interview_voice.main

Environment Variables:
- HOST: Bind address (default: 0.0.0.0)
- PORT: Listen port (default: 8000)
"""

import os

import uvicorn

from interview_voice.config.logging_config import configure_logging, get_logger


def main() -> None:
    configure_logging()
    logger = get_logger(__name__)

    host = os.getenv('HOST', '0.0.0.0')
    port = int(os.getenv('PORT', '8000'))
    logger.info(f"🌐 Starting interview voice API on {host}:{port}")

    from interview_voice.api.server import app

    config = uvicorn.Config(app, host=host, port=port, log_level="info", access_log=False)
    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    main()
