import logging

import uvicorn

from hlsrelay import create_app
from hlsrelay.config import Settings

# --- CONFIGURATION ---
settings = Settings.from_env()

logging.basicConfig(level=settings.log_level,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

app = create_app(settings)

if __name__ == '__main__':
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
