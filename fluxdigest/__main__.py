import uvicorn

from .config import config

if __name__ == "__main__":
    uvicorn.run(
        "fluxdigest.server:app",
        host=config.HOST,
        port=config.PORT,
        log_level=config.LOG_LEVEL.lower(),
    )
