# api/proxy.py
# Serverless entry point: the platform imports `app` and serves it as ASGI
from hlsrelay import create_app

app = create_app()
