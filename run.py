import uvicorn

from barista.app import app
from barista.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "barista.app:app",
        host="0.0.0.0",
        port=5000,
        reload=settings.debug,
    )
