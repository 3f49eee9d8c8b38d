"""
ASGI entry point for the audio stream relay.

    uvicorn server.asgi:app --port 8765

Configuration is read once from the environment (.env honoured).
"""

from dotenv import load_dotenv

from config import AppConfig
from server.app import create_app

load_dotenv()

app = create_app(AppConfig.load_from_env())
