"""HTML pages for the browser wallet flows.

Each page is self-contained: inline CSS plus a small script that posts to
the broker's JSON routes and reports the outcome. Scripts use relative
paths, so a page only ever posts back to the broker that served it.
Values are HTML-escaped before interpolation; values that end up inside
the script are JSON-encoded.
"""

from __future__ import annotations

import html
import json

_LAYOUT = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
<style>
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
         background: #0f0f0f; color: #e0e0e0; min-height: 100vh;
         display: flex; align-items: center; justify-content: center; }}
  .card {{ background: #1a1a2e; border-radius: 16px; padding: 40px;
           max-width: 520px; width: 90%; box-shadow: 0 8px 32px rgba(0,0,0,0.4); }}
  h1 {{ font-size: 1.4rem; margin-bottom: 12px; color: #fff; }}
  .desc {{ color: #999; margin-bottom: 20px; line-height: 1.5; }}
  .field {{ margin-bottom: 16px; }}
  .field label {{ display: block; font-size: 0.8rem; text-transform: uppercase;
                  letter-spacing: 0.5px; color: #888; margin-bottom: 6px; }}
  .mono {{ background: #0f0f1a; border: 1px solid #333; border-radius: 8px;
           padding: 12px 14px; font-family: monospace; font-size: 0.85rem;
           word-break: break-all; color: #e0e0e0; }}
  input[type=text], input[type=password] {{ width: 100%; background: #0f0f1a; color: #e0e0e0;
           border: 1px solid #333; border-radius: 8px; padding: 10px 12px; }}
  button {{ background: #00d4aa; color: #0f0f0f; border: 0; border-radius: 8px;
            padding: 10px 18px; font-weight: 600; cursor: pointer; }}
  .status {{ margin-top: 16px; min-height: 1.2em; }}
  .error {{ color: #ff6b6b; }}
  .ok {{ color: #00d4aa; }}
</style>
</head>
<body>
<div class="card">
{body}
<div class="status" id="status"></div>
</div>
<script>
const TOKEN = {token_js};
function show(msg, ok) {{
  const el = document.getElementById("status");
  el.textContent = msg;
  el.className = "status " + (ok ? "ok" : "error");
}}
async function post(path, body) {{
  const res = await fetch(path, {{
    method: "POST",
    headers: {{ "Content-Type": "application/json" }},
    body: JSON.stringify(body),
  }});
  return res.json();
}}
{script}
</script>
</body>
</html>
"""

_UNLOCK_BODY = """\
<h1>Unlock wallet</h1>
<div class="desc">Enter the password for <strong>{label}</strong> to use it for signing.</div>
<div class="field"><label>Address</label><div class="mono">{address}</div></div>
<div class="field"><label>Password</label><input type="password" id="password"></div>
<button onclick="unlock()">Unlock</button>
"""

_UNLOCK_SCRIPT = """\
async function unlock() {
  const data = await post("/wallet/unlock/" + TOKEN,
    { password: document.getElementById("password").value });
  if (data.ok) show("Wallet unlocked. You can return to your agent.", true);
  else show(data.error || "Unlock failed.", false);
}
"""

_PROVIDE_BODY = """\
<h1>Provide a private key</h1>
<div class="desc">The key is used for this session only unless you choose to save it
encrypted to the local keystore.</div>
<div class="field"><label>Private key</label><input type="password" id="private_key"></div>
<div class="field"><label><input type="checkbox" id="save"> Save to keystore</label></div>
<div class="field"><label>Label</label><input type="text" id="label"></div>
<div class="field"><label>Password</label><input type="password" id="password"></div>
<button onclick="provide()">Use this key</button>
"""

_PROVIDE_SCRIPT = """\
async function provide() {
  const data = await post("/wallet/provide/" + TOKEN, {
    private_key: document.getElementById("private_key").value,
    save: document.getElementById("save").checked,
    label: document.getElementById("label").value,
    password: document.getElementById("password").value,
  });
  if (!data.ok) return show(data.error || "Could not use this key.", false);
  if (data.insufficient_funds)
    show("Key accepted, but the balance is " + data.balance + " " + data.symbol +
         " (needs " + data.required + "). Fund it before signing.", true);
  else show("Key accepted. You can return to your agent.", true);
}
"""

_NEW_BODY = """\
<h1>Back up your new wallet</h1>
<div class="desc">This private key is shown once. Store it somewhere safe before continuing.</div>
<div class="field"><label>Address</label><div class="mono">{address}</div></div>
<div class="field"><label>Private key</label><div class="mono">{private_key}</div></div>
<div class="field"><label><input type="checkbox" id="confirmed"> I have backed up this key</label></div>
<div class="field"><label>Label</label><input type="text" id="label"></div>
<div class="field"><label>Password</label><input type="password" id="password"></div>
<button onclick="confirmBackup()">Save wallet</button>
"""

_NEW_SCRIPT = """\
async function confirmBackup() {
  const data = await post("/wallet/new/" + TOKEN + "/confirm", {
    confirmed: document.getElementById("confirmed").checked,
    label: document.getElementById("label").value,
    password: document.getElementById("password").value,
  });
  if (data.ok) show("Wallet saved and active. You can return to your agent.", true);
  else show(data.error || "Could not save the wallet.", false);
}
"""


def _render(title: str, body: str, script: str, token: str) -> str:
    return _LAYOUT.format(
        title=html.escape(title),
        body=body,
        script=script,
        # "</" must not close the script element early
        token_js=json.dumps(token).replace("</", "<\\/"),
    )


def unlock_page(token: str, label: str, address: str) -> str:
    body = _UNLOCK_BODY.format(label=html.escape(label), address=html.escape(address))
    return _render("Unlock wallet", body, _UNLOCK_SCRIPT, token)


def provide_page(token: str) -> str:
    return _render("Provide a key", _PROVIDE_BODY, _PROVIDE_SCRIPT, token)


def new_wallet_page(token: str, address: str, private_key: str) -> str:
    body = _NEW_BODY.format(address=html.escape(address), private_key=html.escape(private_key))
    return _render("New wallet", body, _NEW_SCRIPT, token)


def not_found_page(message: str) -> str:
    body = f'<h1>{html.escape(message)}</h1>\n<div class="desc">The link may have expired. Ask your agent for a new one.</div>\n'
    return _render(message, body, "", "")
