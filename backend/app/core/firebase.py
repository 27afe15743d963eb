"""
Firebase integration for the Manyanza backend
Firestore holds conversations, bookings, pricing config and the message log
"""
import copy
import json
import logging
import os
import uuid
from functools import lru_cache
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import Conflict, NotFound

logger = logging.getLogger(__name__)


class MockFirestoreClient:
    """In-memory Firestore client for development and tests without Firebase credentials"""

    def __init__(self):
        self._data: Dict[str, Dict[str, dict]] = {}
        logger.info("🔧 Using Mock Firestore Client for development")

    def collection(self, name: str):
        """Return a mock collection"""
        return MockCollection(name, self._data)

    def document(self, path: str):
        """Return a mock document"""
        return MockDocument(path, self._data)


class MockCollection:
    """Mock Firestore collection"""

    def __init__(self, name: str, data_store: dict):
        self.name = name
        self._data = data_store
        self._filters = []
        self._limit: Optional[int] = None
        if name not in self._data:
            self._data[name] = {}

    def document(self, doc_id: Optional[str] = None):
        """Return a mock document, auto-generating an id when none is given"""
        return MockDocument(f"{self.name}/{doc_id or uuid.uuid4().hex}", self._data)

    def where(self, field: str, op: str, value: Any):
        """Equality-only where query"""
        if op != "==":
            raise NotImplementedError(f"Mock Firestore only supports '==' filters, got {op!r}")
        query = MockCollection(self.name, self._data)
        query._filters = self._filters + [(field, value)]
        query._limit = self._limit
        return query

    def limit(self, count: int):
        query = MockCollection(self.name, self._data)
        query._filters = list(self._filters)
        query._limit = count
        return query

    def stream(self):
        """Return matching document snapshots"""
        docs = []
        for doc_id, doc_data in self._data.get(self.name, {}).items():
            if all(doc_data.get(field) == value for field, value in self._filters):
                docs.append(MockDocumentSnapshot(f"{self.name}/{doc_id}", copy.deepcopy(doc_data), doc_id))
        if self._limit is not None:
            docs = docs[:self._limit]
        return docs


class MockDocument:
    """Mock Firestore document"""

    def __init__(self, path: str, data_store: dict):
        self.path = path
        self._data = data_store
        self.collection_name, _, self.id = path.partition('/')

    def _collection(self) -> dict:
        return self._data.setdefault(self.collection_name, {})

    def get(self):
        """Get document snapshot"""
        data = self._collection().get(self.id)
        return MockDocumentSnapshot(self.path, copy.deepcopy(data) if data is not None else None)

    def set(self, data: dict, merge: bool = False):
        """Set document data"""
        collection = self._collection()
        if merge and self.id in collection:
            collection[self.id].update(copy.deepcopy(data))
        else:
            collection[self.id] = copy.deepcopy(data)

    def create(self, data: dict):
        """Create document, failing if it already exists"""
        collection = self._collection()
        if self.id in collection:
            raise Conflict(f"Document already exists: {self.path}")
        collection[self.id] = copy.deepcopy(data)

    def update(self, data: dict):
        """Update existing document"""
        collection = self._collection()
        if self.id not in collection:
            raise NotFound(f"No document to update: {self.path}")
        collection[self.id].update(copy.deepcopy(data))

    def delete(self):
        """Delete document"""
        self._collection().pop(self.id, None)


class MockDocumentSnapshot:
    """Mock document snapshot"""

    def __init__(self, path: str, data: Optional[dict], doc_id: Optional[str] = None):
        self.id = doc_id or path.split('/')[-1]
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self):
        """Get document data as dict"""
        return self._data


class FirebaseClient:
    """Firebase Admin SDK client"""

    def __init__(self):
        self._initialize_firebase()

    def _initialize_firebase(self):
        """
        Initialize Firebase Admin SDK
        Supports three modes:
        1. Mock mode (USE_MOCK_FIREBASE=True) - in-memory database, no credentials
        2. GOOGLE_APPLICATION_CREDENTIALS env var pointing to JSON file (production recommended)
        3. FIREBASE_CREDENTIALS_JSON env var with inline JSON string (alternative)
        """
        from dotenv import load_dotenv

        # Load .env file for development
        load_dotenv()

        use_mock = os.getenv('USE_MOCK_FIREBASE', 'False').lower() == 'true'

        if use_mock:
            logger.warning("🔧 Running in MOCK mode - using in-memory database (no real Firebase)")
            self._db = MockFirestoreClient()
            return

        try:
            google_creds_path = os.getenv('GOOGLE_APPLICATION_CREDENTIALS')

            if google_creds_path:
                logger.info(f"Loading Firebase credentials from GOOGLE_APPLICATION_CREDENTIALS: {google_creds_path}")
                cred = credentials.Certificate(google_creds_path)
            else:
                firebase_creds_json = os.getenv('FIREBASE_CREDENTIALS_JSON')

                if firebase_creds_json:
                    logger.info("Loading Firebase credentials from FIREBASE_CREDENTIALS_JSON environment variable")
                    cred = credentials.Certificate(json.loads(firebase_creds_json))
                else:
                    raise ValueError(
                        "Firebase credentials not found. Please set either:\n"
                        "  - USE_MOCK_FIREBASE=True (for development), or\n"
                        "  - GOOGLE_APPLICATION_CREDENTIALS=/path/to/firebase-key.json, or\n"
                        "  - FIREBASE_CREDENTIALS_JSON='{...}' (inline JSON string)"
                    )

            if not firebase_admin._apps:
                firebase_admin.initialize_app(cred)

            self._db = firestore.client()

            logger.info("✅ Firebase initialized successfully")

        except Exception as e:
            logger.error(f"❌ Failed to initialize Firebase: {e}")
            raise

    @property
    def db(self):
        """Get Firestore client instance"""
        return self._db


@lru_cache(maxsize=1)
def get_firebase_client() -> FirebaseClient:
    return FirebaseClient()


def get_db():
    """Shared Firestore client (real or mock), created on first use"""
    return get_firebase_client().db


# ==================== Collection References ====================
class Collections:
    """Firestore collection names"""
    CONVERSATIONS = "conversations"
    BOOKINGS = "bookings"
    SETTINGS = "settings"
    NOTIFICATIONS = "notifications"
    WHATSAPP_MESSAGES = "whatsapp_messages"


PRICING_SETTINGS_DOC = "pricing"


def to_plain(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop None values so Firestore documents stay sparse"""
    return {k: v for k, v in data.items() if v is not None}
