#!/usr/bin/env python3
"""
Reset a user's password in the Repair24 SQLite database.

The script never reads existing passwords; it stores a new hash in the
format used by the API (``salthex$hashhex``, PBKDF2-HMAC-SHA256) for the
given email.  Optionally it also re-enables a disabled account.

Usage:
    python reset_password.py --db ./repair24_api/repair24.db --email admin@example.com --password "NewStrongPass!234"

If --password is omitted, you will be prompted to enter it securely.
"""

import argparse
import getpass
import os
import sqlite3
import sys

from repair24_api.app.core.security import hash_password


def main() -> None:
    ap = argparse.ArgumentParser(description="Reset a Repair24 user password (SQLite).")
    ap.add_argument("--db", required=True, help="Path to SQLite DB file (e.g., ./repair24_api/repair24.db)")
    ap.add_argument("--email", required=True, help="User email to update")
    ap.add_argument("--password", help="New password. If omitted, you'll be prompted securely.")
    ap.add_argument("--enable", action="store_true", help="Also clear the disabled flag")
    args = ap.parse_args()

    if not os.path.exists(args.db):
        print(f"[!] DB not found: {args.db}", file=sys.stderr)
        sys.exit(1)

    new_password = args.password or getpass.getpass("Enter NEW password: ")
    if len(new_password) < 6:
        print("[!] Password must be at least 6 characters.", file=sys.stderr)
        sys.exit(1)

    conn = sqlite3.connect(args.db)
    try:
        row = conn.execute("SELECT id FROM users WHERE email = ?", (args.email.lower(),)).fetchone()
        if not row:
            print(f"[!] No user found with email: {args.email}", file=sys.stderr)
            sys.exit(2)
        assignments = "password = ?, updated_at = CURRENT_TIMESTAMP"
        if args.enable:
            assignments += ", disabled = 0"
        conn.execute(f"UPDATE users SET {assignments} WHERE id = ?", (hash_password(new_password), row[0]))
        conn.commit()
    finally:
        conn.close()
    print(f"[+] Password updated for {args.email} (user id {row[0]})")


if __name__ == "__main__":
    main()
