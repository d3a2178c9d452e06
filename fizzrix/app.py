import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from fizzrix.routes import router
from fizzrix.storage import Repository

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None) -> FastAPI:
    """Build the API around one Repository (DATA_DIR env var or ./data).

    uvicorn runs this as a factory: `uvicorn fizzrix.app:create_app --factory`.
    """
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))

    app = FastAPI(title="Fizzrix")
    app.state.repo = Repository(resolved)
    app.include_router(router, prefix="/api")
    return app
