# gdrive_auth.py
import os
import json
from google_auth_oauthlib.flow import InstalledAppFlow
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from .gdrive import SCOPES

TOKEN_PATH = "gdrive_token.json"


def gdrive_authenticate(token_path: str = TOKEN_PATH):
    """
    Handles the OAuth 2.0 flow for read-only Google Drive access.
    Refreshes an existing token when possible; otherwise prompts for the
    path to the OAuth client's credentials.json and runs the browser flow.
    The resulting token is what GDRIVE_TOKEN_JSON expects.
    """
    creds = None

    # Check if a token file already exists
    if os.path.exists(token_path):
        with open(token_path, "r") as token_file:
            creds_data = json.load(token_file)
        creds = Credentials.from_authorized_user_info(creds_data, SCOPES)

    if creds and creds.valid:
        print(f"Token in {token_path} is still valid.")
        return creds

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    else:
        creds_path = input("Please enter the path to your credentials.json file: ")
        if not os.path.exists(creds_path):
            print("Error: The provided path to credentials.json is invalid.")
            return None
        with open(creds_path, "r") as client_file:
            client_config = json.load(client_file)

        flow = InstalledAppFlow.from_client_config(client_config, SCOPES)
        creds = flow.run_local_server(port=0)

    # Save the credentials for the next run
    with open(token_path, "w") as token_file:
        token_file.write(creds.to_json())
    print(f"Token saved to {token_path}")
    return creds


if __name__ == "__main__":
    gdrive_authenticate()
