import pytest
from typing import Any, Dict

from scrap_ledger.database.connection import DatabaseConfig, DatabaseManager
from scrap_ledger.repositories.sqlite_document_store import SQLiteDocumentStore
from scrap_ledger.services.ledger_service import LedgerService
from scrap_ledger.config.settings import LedgerSettings

@pytest.fixture
def test_db(tmp_path):
    """
    Create a real test database.

    Use pytest's tmp_path fixture to create a temporary directory.
    Database is automatically cleaned up after each test.
    """
    db_manager = DatabaseManager(DatabaseConfig(tmp_path / "test.db"))
    db_manager.ensure_schema()

    yield db_manager

    db_manager.close()

@pytest.fixture
def store(test_db) -> SQLiteDocumentStore:
    """Document store backed by the test database"""
    return SQLiteDocumentStore(test_db)

@pytest.fixture
def ledger_service(store) -> LedgerService:
    """Service wired to a real store with default settings"""
    return LedgerService(store, LedgerSettings())

@pytest.fixture
def purchase_draft() -> Dict[str, Any]:
    """10 kg of copper at 100, 500 paid up front"""
    return {
        "kind": "purchase",
        "partyName": "Ali Traders",
        "partyContact": "0300-1234567",
        "items": [{"description": "Copper wire", "quantityKg": "10", "unitRate": "100"}],
        "paidAmount": "500",
    }

@pytest.fixture
def sell_draft() -> Dict[str, Any]:
    """50 kg of iron sold at 120 against a cost of 100, nothing received yet"""
    return {
        "kind": "sell",
        "partyName": "Steel Mills",
        "items": [{"description": "Iron", "quantityKg": "50", "unitRate": "120", "costRate": "100"}],
        "paidAmount": "0",
    }
