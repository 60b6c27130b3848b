"""Run the API server: python -m fieldtrack"""

import uvicorn

from fieldtrack.config import settings


def main() -> None:
    uvicorn.run(
        "fieldtrack.app:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
