import uvicorn

from lingo_srs.config import get_settings


def main():
    settings = get_settings()
    print(f"Starting Lingo SRS API on http://{settings.host}:{settings.port}")
    uvicorn.run(
        "lingo_srs.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
