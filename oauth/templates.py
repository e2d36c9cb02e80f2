"""HTML template for the client approval page.

Theme colors:
- Background: #FAF9F7 (warm cream)
- Primary: #06C755 (LINE green)
- Primary hover: #05A847
- Text: #1A1915 (dark charcoal)
- Secondary text: #6B6860
- Border: #E5E4E0
"""

import html
from typing import Optional
from urllib.parse import urlparse

APPROVAL_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Authorize - {server_name}</title>
    <style>
        body {{ font-family: system-ui, 'Hiragino Sans', sans-serif; background: #FAF9F7; margin: 0;
               min-height: 100vh; display: grid; place-items: center; }}
        .card {{ background: #fff; padding: 32px 28px; border-radius: 20px; box-shadow: 0 2px 16px rgba(0,0,0,0.06);
                width: 90%; max-width: 420px; border: 1px solid #E5E4E0; text-align: center; }}
        .logo {{ width: 64px; height: 64px; border-radius: 12px; margin-bottom: 16px; }}
        h1 {{ margin: 0 0 4px; color: #1A1915; font-size: 21px; }}
        p {{ color: #6B6860; font-size: 14px; line-height: 1.5; }}
        .client {{ font-weight: 600; color: #1A1915; }}
        button {{ width: 100%; padding: 13px; background: #06C755; color: #fff; border: 0;
                 border-radius: 10px; font-size: 15px; font-weight: 700; cursor: pointer; margin-top: 12px; }}
        button:hover {{ background: #05A847; }}
    </style>
</head>
<body>
    <div class="card">
        {logo}
        <h1>{server_name}</h1>
        <p>{server_description}</p>
        <p><span class="client">{client_name}</span> is requesting access to your account.</p>
        <form method="POST" action="/authorize">
            <input type="hidden" name="csrf_token" value="{csrf_token}">
            <input type="hidden" name="state" value="{state}">
            <button type="submit">Log in with LINE and approve</button>
        </form>
    </div>
</body>
</html>
"""


def safe_url(url: Optional[str]) -> str:
    """Return url if it is an absolute http(s) URL, else ''."""
    if not url:
        return ""
    parsed = urlparse(url)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        return url
    return ""


def render_approval_page(
    client_name: str,
    server_name: str,
    server_description: str,
    csrf_token: str,
    state: str,
    logo_url: Optional[str] = None,
) -> str:
    logo = safe_url(logo_url)
    logo_html = f'<img src="{html.escape(logo)}" class="logo" alt="logo">' if logo else ""
    return APPROVAL_PAGE.format(
        logo=logo_html,
        server_name=html.escape(server_name),
        server_description=html.escape(server_description),
        client_name=html.escape(client_name),
        csrf_token=html.escape(csrf_token),
        state=html.escape(state),
    )
