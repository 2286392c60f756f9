import uvicorn

from .api.app import create_app
from .settings import load_settings


def main():
    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
