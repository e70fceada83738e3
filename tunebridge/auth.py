#!/usr/bin/env python3
"""One-time helpers that mint the refresh tokens tunebridge runs on.

    tunebridge-auth spotify   prints SPOTIFY_REFRESH_TOKEN
    tunebridge-auth youtube   prints YOUTUBE_REFRESH_TOKEN

Copy the printed value into your .env.
"""

import argparse
import logging
import os
import secrets
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse

import requests
from dotenv import load_dotenv
from google_auth_oauthlib.flow import InstalledAppFlow

from tunebridge.clients.spotify import TOKEN_URL, SpotifyAuthError
from tunebridge.clients.youtube import SCOPES, YouTubeAuthError, _load_client_credentials
from tunebridge.sync import data_dir

SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_SCOPES = [
    "playlist-read-private",
    "playlist-read-collaborative",
    "playlist-modify-public",
    "playlist-modify-private",
]
DEFAULT_SPOTIFY_REDIRECT = "http://127.0.0.1:8080/callback"

logger = logging.getLogger(__name__)


def build_spotify_auth_url(client_id: str, redirect_uri: str, state: str) -> str:
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": " ".join(SPOTIFY_SCOPES),
        "state": state,
        "show_dialog": "true",
    }
    return f"{SPOTIFY_AUTH_URL}?{urlencode(params)}"


def code_from_redirect(redirect_url: str, state: str) -> str:
    """Pull the authorization code out of the URL the browser was sent to."""
    query = parse_qs(urlparse(redirect_url.strip()).query)
    if "error" in query:
        raise SpotifyAuthError(f"Authorization denied: {query['error'][0]}")
    if query.get("state", [None])[0] != state:
        raise SpotifyAuthError("State mismatch in redirect URL")
    code = query.get("code", [None])[0]
    if not code:
        raise SpotifyAuthError("Redirect URL has no 'code' parameter")
    return code


def exchange_spotify_code(code: str, client_id: str, client_secret: str, redirect_uri: str,
                          session: requests.Session | None = None) -> str:
    """Authorization-code grant; returns the refresh token."""
    response = (session or requests).post(
        TOKEN_URL,
        data={"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri},
        auth=(client_id, client_secret),
        timeout=30,
    )
    if response.status_code != 200:
        raise SpotifyAuthError(f"Code exchange failed ({response.status_code}): {response.text[:200]}")
    token = response.json().get("refresh_token")
    if not token:
        raise SpotifyAuthError("Token response missing 'refresh_token'")
    return token


def spotify_refresh_token(prompt=input) -> str:
    client_id = os.environ.get("SPOTIFY_CLIENT_ID")
    client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET")
    if not (client_id and client_secret):
        raise SpotifyAuthError("Set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET")
    redirect_uri = os.environ.get("SPOTIFY_REDIRECT_URI", DEFAULT_SPOTIFY_REDIRECT)

    state = secrets.token_urlsafe(16)
    print("\nOpen this URL in your browser to authorize:\n")
    print(build_spotify_auth_url(client_id, redirect_uri, state))
    redirect_url = prompt("\nPaste the full URL you were redirected to: ")
    return exchange_spotify_code(code_from_redirect(redirect_url, state),
                                 client_id, client_secret, redirect_uri)


def youtube_refresh_token(base: Path) -> str:
    client_id, client_secret = _load_client_credentials(base)
    flow = InstalledAppFlow.from_client_config(
        {"installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
        }},
        SCOPES,
    )
    # Google issues a refresh token only for offline access with a consent prompt.
    creds = flow.run_local_server(port=0, access_type="offline", prompt="consent")
    if not creds.refresh_token:
        raise YouTubeAuthError(
            "No refresh token returned; revoke the app at "
            "https://myaccount.google.com/permissions and try again"
        )
    return creds.refresh_token


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s")
    ap = argparse.ArgumentParser(prog="tunebridge-auth",
                                 description="Mint a refresh token for one service.")
    ap.add_argument("service", choices=("spotify", "youtube"))
    args = ap.parse_args(argv)

    try:
        if args.service == "spotify":
            token = spotify_refresh_token()
            name = "SPOTIFY_REFRESH_TOKEN"
        else:
            token = youtube_refresh_token(data_dir())
            name = "YOUTUBE_REFRESH_TOKEN"
    except (SpotifyAuthError, YouTubeAuthError) as e:
        logger.error(str(e))
        return 1

    print(f"\n{name}={token}\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
