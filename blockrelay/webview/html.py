"""HTML shell served to each webview.

The page embeds its BootstrapConfig as ``window.BLOCKRELAY_BOOTSTRAP`` and
loads the built frontend bundle, or the Vite dev server in dev mode.
"""
from __future__ import annotations

import json
import logging
import secrets
import string
from urllib.parse import urlsplit

from blockrelay.webview.registry import BootstrapConfig

logger = logging.getLogger(__name__)

_NONCE_ALPHABET = string.ascii_letters + string.digits


def make_nonce(length: int = 32) -> str:
    return "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(length))


def _bootstrap_script(bootstrap: BootstrapConfig, nonce: str) -> str:
    # "</" would close the script element early.
    payload = json.dumps(bootstrap.to_dict()).replace("</", "<\\/")
    return (
        f'    <script nonce="{nonce}">\n'
        f"      window.BLOCKRELAY_BOOTSTRAP = {payload};\n"
        f"    </script>"
    )


def build_html(
    bootstrap: BootstrapConfig,
    *,
    csp_source: str,
    asset_base: str,
    nonce: str | None = None,
) -> str:
    """Production page: bundle and stylesheet served from ``asset_base``."""
    nonce = nonce or make_nonce()
    base = asset_base.rstrip("/")
    csp = " ".join([
        "default-src 'none';",
        f"img-src {csp_source} https: data:;",
        f"style-src {csp_source} 'unsafe-inline';",
        f"font-src {csp_source} data:;",
        f"script-src {csp_source} 'nonce-{nonce}';",
        f"connect-src {csp_source} https:;",
        f"worker-src {csp_source} blob:;",
    ])
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <meta http-equiv="Content-Security-Policy" content="{csp}" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Chat</title>
    <link href="{base}/media/style.css" rel="stylesheet" />
{_bootstrap_script(bootstrap, nonce)}
</head>
<body>
    <div id="app"></div>
    <script type="module" nonce="{nonce}" src="{base}/media/main.js"></script>
</body>
</html>"""


def dev_origins(dev_server_url: str) -> tuple[str, str]:
    """Return (http origin, websocket origin) for the Vite dev server."""
    parts = urlsplit(dev_server_url)
    if not parts.scheme or not parts.hostname:
        logger.warning("Unparsable dev server URL %r; using it verbatim", dev_server_url)
        return dev_server_url, "ws://localhost:5173"
    port = f":{parts.port}" if parts.port else ""
    ws_scheme = "wss:" if parts.scheme == "https" else "ws:"
    return (
        f"{parts.scheme}://{parts.hostname}{port}",
        f"{ws_scheme}//{parts.hostname}{port}",
    )


def build_dev_html(
    bootstrap: BootstrapConfig,
    *,
    csp_source: str,
    dev_server_url: str,
    nonce: str | None = None,
) -> str:
    """Dev page: loads the Vite client and entry module with HMR allowed."""
    nonce = nonce or make_nonce()
    origin, ws_url = dev_origins(dev_server_url)
    csp = " ".join([
        "default-src 'none';",
        f"img-src {csp_source} https: data:;",
        f"style-src {csp_source} 'unsafe-inline' {origin};",
        f"font-src {csp_source} data: {origin};",
        f"script-src {csp_source} 'nonce-{nonce}' 'unsafe-eval' {origin};",
        f"connect-src {csp_source} {origin} {ws_url} https:;",
        f"worker-src {csp_source} blob:;",
    ])
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8" />
    <meta http-equiv="Content-Security-Policy" content="{csp}" />
    <base href="{origin}/" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Chat (Dev)</title>
{_bootstrap_script(bootstrap, nonce)}
</head>
<body>
    <div id="app"></div>
    <script type="module" nonce="{nonce}" src="{origin}/@vite/client"></script>
    <script type="module" nonce="{nonce}" src="{origin}/src/main.ts"></script>
</body>
</html>"""
