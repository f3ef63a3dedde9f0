"""Run the issue bot service with uvicorn: python -m src.issuebot"""

import uvicorn

from src.issuebot.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "src.issuebot.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
