import atexit
import logging

from flask import Flask

import images
from auth import FirebaseIdentity, LocalIdentity
from config import Config, get_secret
from firestore_db import FirestoreStore
from routes_api import api
from routes_web import web
from services import EXTENSION_KEY, Services
from sql_db import SqlStore

logger = logging.getLogger(__name__)


def _build_store(config):
    if config["LOCAL_DB"]:
        logger.info("Using SQL document store at %s", config["SQLALCHEMY_DATABASE_URI"])
        return SqlStore(config["SQLALCHEMY_DATABASE_URI"])
    logger.info("Using Firestore database %s", config["FIRESTORE_DB_ID"])
    return FirestoreStore(project=config["GOOGLE_CLOUD_PROJECT"], database=config["FIRESTORE_DB_ID"])


def _build_identity(config, store):
    if config["AUTH_PROVIDER"] == "local":
        return LocalIdentity(store)
    api_key = config["FIREBASE_API_KEY"] or get_secret("FIREBASE_API_KEY")
    return FirebaseIdentity(api_key, config["FIREBASE_PROJECT_ID"])


def create_app(config_overrides=None, store=None, identity=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if store is None:
        store = _build_store(app.config).open()
        atexit.register(store.close)
    if identity is None:
        identity = _build_identity(app.config, store)

    images.configure(
        app.config["CLOUDINARY_CLOUD_NAME"],
        app.config["CLOUDINARY_API_KEY"],
        app.config["CLOUDINARY_API_SECRET"] or get_secret("CLOUDINARY_API_SECRET") or "",
    )

    app.extensions[EXTENSION_KEY] = Services.build(
        store,
        identity,
        invite_ttl_days=app.config["STAFF_INVITE_TTL_DAYS"],
        default_tax_rate=app.config["DEFAULT_TAX_RATE"],
        public_base_url=app.config["PUBLIC_BASE_URL"],
        image_folder=app.config["CLOUDINARY_FOLDER"],
    )

    app.register_blueprint(web)
    app.register_blueprint(api)
    return app


if __name__ == "__main__":
    create_app().run(debug=True)
