from html import escape

_STYLE = """
body {
  font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;
  background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
  min-height: 100vh; margin: 0; padding: 20px;
  display: flex; align-items: center; justify-content: center;
}
.container {
  background: white; padding: 50px 40px; border-radius: 20px;
  box-shadow: 0 20px 60px rgba(0,0,0,0.3); text-align: center; max-width: 500px;
}
h1 { margin-bottom: 15px; }
p { color: #4f545c; line-height: 1.6; }
.ok { color: #3ba55d; }
.brand { color: #5865F2; }
.fail { color: #ed4245; }
.btn {
  display: inline-block; background: #5865F2; color: white; padding: 15px 40px;
  border-radius: 8px; text-decoration: none; font-weight: bold; border: none;
  font-size: 16px; cursor: pointer;
}
.info { margin-top: 30px; padding: 15px; background: #f0f4ff; border-radius: 8px; font-size: 14px; }
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)}</title>
  <style>{_STYLE}</style>
</head>
<body>
  <div class="container">
{body}
  </div>
</body>
</html>
"""


def landing_page() -> str:
    return _page(
        "Discord Verification Bot",
        """    <h1 class="brand">Discord Verification Bot</h1>
    <p>The verification system is running and ready to process verifications.</p>
    <p class="ok"><strong>Online</strong></p>""",
    )


def verify_page(server_name: str, authorize_url: str) -> str:
    name = escape(server_name)
    return _page(
        "Discord Verification",
        f"""    <h1 class="brand">Verify for {name}</h1>
    <p>Before you can start chatting in <strong>{name}</strong>, you need to verify yourself.
    Click the button below to authenticate with Discord.</p>
    <a class="btn" href="{escape(authorize_url)}">Verify with Discord</a>
    <div class="info">
      <strong>Why do we need this?</strong><br>
      We use Discord's official OAuth2 system to securely verify your identity.
      We'll only access your basic profile information.
    </div>""",
    )


def success_page(username: str) -> str:
    return _page(
        "Verification Successful",
        f"""    <h1 class="ok">Verification Successful!</h1>
    <p>Welcome, <span class="brand">{escape(username)}</span>!<br>
    You have been successfully verified and granted access to the server.</p>
    <p>You can now close this window and return to Discord.</p>
    <button class="btn" onclick="window.close()">Close Window</button>""",
    )


def error_page(message: str) -> str:
    return _page(
        "Verification Failed",
        f"""    <h1 class="fail">Verification Failed</h1>
    <p>{escape(message)}</p>
    <button class="btn" onclick="window.close()">Close Window</button>""",
    )
