from datetime import date

import pytest

from invoice_ledger.services.storage import MemoryStore
from invoice_ledger.services.store import LedgerStore

TODAY = date(2024, 6, 1)

PROFILE = {
    "companyName": "Acme Traders",
    "address": "12 MG Road, Bengaluru",
    "contactNumber": "+91 80 1234 5678",
    "email": "billing@acme.example",
    "taxId": "29ABCDE1234F1Z5",
    "upiId": "acme@upi",
    "termsAndConditions": "Payment within 15 days.",
}

CLIENT = {
    "name": "Globex Pvt Ltd",
    "billingAddress": "5 Park Street, Kolkata",
    "email": "accounts@globex.example",
    "phoneNumber": "+91 33 9876 5432",
}


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def store(storage):
    return LedgerStore(storage, clock=lambda: TODAY)


@pytest.fixture
def ready_store(store):
    """Store with a company profile, one client and one catalog item."""
    store.set_company_profile(PROFILE)
    store.add_client(CLIENT)
    store.add_item({"name": "Consulting hour", "unitPrice": 100, "taxRate": 18})
    return store


def draft_for(store, **overrides):
    client = store.clients[0]
    item = store.items[0]
    data = {
        "billDate": "2024-06-01",
        "dueDate": "2024-07-01",
        "clientId": client.id,
        "items": [{"stockItemId": item.id, "quantity": 2}],
    }
    data.update(overrides)
    return data
