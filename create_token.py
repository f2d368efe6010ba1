import sys

from repair24_api.app.core.security import create_access_token

# email of an existing admin account; the token lives for a year (seconds)
email = sys.argv[1] if len(sys.argv) > 1 else "admin@repair24.local"
token = create_access_token({"sub": email}, expires_delta=365 * 24 * 60 * 60)
print(token)
