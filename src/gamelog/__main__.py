"""gamelog entrypoint.

Run with:
  python -m gamelog
"""

import uvicorn

from gamelog.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "gamelog.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
