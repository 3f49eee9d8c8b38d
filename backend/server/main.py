"""
Run the audio stream relay with uvicorn.

    audio-relay            (console script)
    python -m server.main  (from backend/)

Host and port come from AUDIO_WS_HOST / AUDIO_WS_PORT (.env is honoured).
"""

from __future__ import annotations

from dotenv import load_dotenv
import uvicorn

from config import AppConfig


def main() -> None:
    load_dotenv()
    config = AppConfig.load_from_env()

    uvicorn.run(
        "server.asgi:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
