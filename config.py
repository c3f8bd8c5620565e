import logging
import os
from typing import Optional

import google.auth
from dotenv import load_dotenv
from google.cloud import secretmanager

load_dotenv()

logger = logging.getLogger(__name__)


def get_secret(name: str) -> Optional[str]:
    """
    Read a secret from Google Secret Manager.
    Falls back to environment variable for local development.
    """
    env_val = os.environ.get(name)
    if env_val:
        return env_val

    try:
        creds, project_id = google.auth.default()
        if not project_id:
            project_id = os.environ.get("GOOGLE_CLOUD_PROJECT")

        if not project_id:
            return None

        client = secretmanager.SecretManagerServiceClient(credentials=creds)
        secret_path = f"projects/{project_id}/secrets/{name}/versions/latest"
        resp = client.access_secret_version(request={"name": secret_path})
        return resp.payload.data.decode("utf-8").strip()

    except Exception as e:
        logger.warning("Secret Manager read failed for %s: %s", name, e)
        return None


class Config:
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "dev-secret")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # LOCAL mode keeps documents in a SQL database instead of Firestore
    LOCAL_DB = os.getenv("LOCAL_DB", "1") == "1"
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///local.db")

    # Firestore Native database id, "(default)" is Datastore mode
    FIRESTORE_DB_ID = os.getenv("FIRESTORE_DB_ID", "default")
    GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")

    # "firebase" verifies Firebase Auth users, "local" checks password hashes
    AUTH_PROVIDER = os.getenv("AUTH_PROVIDER", "local" if LOCAL_DB else "firebase")
    FIREBASE_API_KEY = os.getenv("FIREBASE_API_KEY", "")
    FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", GOOGLE_CLOUD_PROJECT or "")

    CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "demo")
    CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
    CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
    CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "menu-items")

    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5000")
    DEFAULT_TAX_RATE = float(os.getenv("DEFAULT_TAX_RATE", "0"))
    STAFF_INVITE_TTL_DAYS = int(os.getenv("STAFF_INVITE_TTL_DAYS", "7"))
