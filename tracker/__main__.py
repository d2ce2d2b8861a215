import uvicorn

from tracker.config import SERVER_HOST, SERVER_PORT

uvicorn.run("tracker.main:app", host=SERVER_HOST, port=SERVER_PORT, proxy_headers=True, forwarded_allow_ips="*")
