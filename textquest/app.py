from fastapi import FastAPI

from textquest import storage
from textquest.engine import SessionEngine
from textquest.llm import HttpModelClient, ModelClient
from textquest.routes import router
from textquest.settings import EnvConfig


def create_app(
    config: EnvConfig | None = None,
    client: ModelClient | None = None,
    kv: storage.KeyValueStore | None = None,
) -> FastAPI:
    """Build the API around one session engine.

    Defaults come from the environment (and ``.env``); tests inject a stub
    client and an in-memory store.
    """
    config = config or EnvConfig.from_env()
    kv = kv or storage.JsonFileStore(config.data_dir)
    client = client or HttpModelClient(
        config.model_url,
        api_key=config.api_key,
        provider_format=config.provider_format,
    )

    app = FastAPI(title="TextQuest")
    app.state.engine = SessionEngine(client, kv)
    app.include_router(router, prefix="/api")
    return app
