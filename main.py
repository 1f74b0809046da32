#!/usr/bin/env python3
"""
SoundHub -- demo music-sharing site.

Usage:
  python main.py
  python main.py --port 8080
  python main.py --host 0.0.0.0 --reload

Environment variables (or .env):
  SECRET_KEY        Session signing key. Required unless DEBUG=true.
  DEBUG             Enables the auto-generated dev key and verbose OAuth errors.
  BASE_URL          Public origin used to build OAuth callback URLs.
  GOOGLE_CLIENT_ID / YANDEX_CLIENT_ID / VK_CLIENT_ID (+ *_CLIENT_SECRET)
                    Enable the matching social login button.
"""

import argparse
import os

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="soundhub",
        description="Run the SoundHub web server.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "3000")),
        help="Port to listen on (default: $PORT or 3000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change (development only)",
    )
    args = parser.parse_args()

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
