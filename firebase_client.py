# firebase_client.py - Firebase Admin SDK initialisation.

import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore

from errors import ConfigurationError

logger = logging.getLogger(__name__)


def _load_credentials(settings):
    if settings.firebase_service_account_json:
        try:
            key_data = json.loads(settings.firebase_service_account_json)
        except ValueError as e:
            raise ConfigurationError(f"FIREBASE_SERVICE_ACCOUNT_KEY_JSON is not valid JSON: {e}")
        if 'private_key' in key_data:
            # Hosting dashboards store the key with escaped newlines
            key_data['private_key'] = key_data['private_key'].replace("\\n", "\n")
            logger.debug("Private key formatting fixed")
        return credentials.Certificate(key_data)
    logger.info(f"🔐 Using credentials file: {settings.google_application_credentials}")
    return credentials.Certificate(settings.google_application_credentials)


def initialize_firestore(settings):
    """Initialises the Firebase app once per process and returns a Firestore client."""
    settings.require_store()
    try:
        if not firebase_admin._apps:
            firebase_admin.initialize_app(_load_credentials(settings))
            logger.info("✅ Firebase Admin SDK initialized")
        else:
            logger.debug("Using existing Firebase app instance")
        return firestore.client()
    except ConfigurationError:
        raise
    except (ValueError, IOError) as e:
        logger.error(f"🚨 Firebase initialization failed: {e}", exc_info=True)
        raise ConfigurationError(f"Firebase initialization failed: {e}")
