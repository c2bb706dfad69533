import firebase_admin
from firebase_admin import credentials, firestore
import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_db = None


def _build_credentials():
    """
    Builds Firebase credentials from the environment.

    GOOGLE_APPLICATION_CREDENTIALS (a service account file) wins; otherwise the
    service account is assembled from the individual FIREBASE_* variables.
    """
    cred_path = os.getenv('GOOGLE_APPLICATION_CREDENTIALS')
    if cred_path:
        return credentials.Certificate(cred_path)

    private_key = os.getenv("FIREBASE_PRIVATE_KEY")
    cred_dict = {
        "type": "service_account",
        "project_id": os.getenv("FIREBASE_PROJECT_ID"),
        "private_key": private_key.replace('\\n', '\n') if private_key else None,
        "client_email": os.getenv("FIREBASE_CLIENT_EMAIL"),
        "token_uri": os.getenv("FIREBASE_TOKEN_URI", "https://oauth2.googleapis.com/token"),
    }
    if not all(cred_dict.values()):
        raise ValueError("One or more Firebase environment variables are not set.")
    return credentials.Certificate(cred_dict)


def get_db():
    """
    Returns the Firestore client, initializing the Firebase Admin SDK on first use.
    """
    global _db
    if _db is None:
        if not firebase_admin._apps:
            firebase_admin.initialize_app(_build_credentials())
            logger.info("Firebase Admin SDK initialized successfully.")
        _db = firestore.client()
    return _db
