# hlsrelay/__init__.py
# HLS playlist/segment relay with CORS and spoofed identity headers
from hlsrelay.server import create_app

__all__ = ["create_app"]
