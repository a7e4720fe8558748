from __future__ import annotations

CREDS_FILENAME = "creds.json"

DEFAULT_SESSION_ROOT = "./bot_session"
SESSION_AUTH_PATH = "/api/session/{session_id}/auth"

# Baileys publishes the WhatsApp Web version it currently targets here.
WA_VERSION_URL = (
    "https://raw.githubusercontent.com/WhiskeySockets/Baileys/master"
    "/src/Defaults/baileys-version.json"
)

USER_AGENT = "wabot/0.1"

# Delay before reopening after the server asks for a restart (stream error 515).
RESTART_REQUIRED_DELAY_S = 3.0

# JID server suffixes.
USER_SERVER = "s.whatsapp.net"
LID_SERVER = "lid"
GROUP_SERVER = "g.us"
NEWSLETTER_SERVER = "newsletter"
