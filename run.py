import uvicorn

from arena.core.config import settings
from arena.utils.logging import setup_logging

if __name__ == "__main__":
    setup_logging(settings.log_file)
    uvicorn.run("arena.main:app", host="127.0.0.1", port=3011, log_config=None, log_level=None)
