import uvicorn

from app.main import create_app
from app.platform.config import get_settings

app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=get_settings().DEBUG)
