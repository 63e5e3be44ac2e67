#!/usr/bin/env python3
"""
Prints a password hash for ADMIN_PASSWORD_HASH in .env.

Usage:
    python scripts/hash_password.py
    python scripts/hash_password.py --password 'secret'   # non-interactive
"""

import argparse
import getpass
import sys

from werkzeug.security import generate_password_hash


def main():
    parser = argparse.ArgumentParser(description="Generate ADMIN_PASSWORD_HASH for .env")
    parser.add_argument("--password", "-p", help="Password (prompted if omitted)")
    args = parser.parse_args()

    password = args.password
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            print("ERROR: Passwords do not match", file=sys.stderr)
            return 1
    if not password:
        print("ERROR: Empty password", file=sys.stderr)
        return 1

    print(f"ADMIN_PASSWORD_HASH={generate_password_hash(password)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
