from urllib.parse import quote

WS_PUBLIC_PATH = "/ws/public"


def websocket_url(api_url: str, session_key: str) -> str:
    """http -> ws, https -> wss, then /ws/public/<sessionKey>."""
    base = api_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}{WS_PUBLIC_PATH}/{quote(session_key, safe='')}"
