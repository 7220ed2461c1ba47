"""Constants for OAuth 2.0 authentication."""

TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"

# Used when the token endpoint omits expires_in (4 hours)
DROPBOX_ACCESS_TOKEN_EXPIRY_SECONDS = 14400

# Tokens expiring within this window are refreshed ahead of time (5 minutes)
TOKEN_EXPIRY_BUFFER_SECONDS = 300

# Keyring service name for stored tokens
KEYRING_SERVICE_NAME = "dbox"
