from fastapi import APIRouter, FastAPI, HTTPException, Security
from fastapi.responses import Response
from fastapi.security import APIKeyHeader
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging
import os
from pathlib import Path
from typing import Optional

from invoice_ledger.errors import NotFound, PersistenceUnavailable, PreconditionFailed, ValidationFailed
from invoice_ledger.models.invoice import (
    Client,
    ClientInput,
    CompanyProfileInput,
    DEFAULT_COMPANY_PROFILE_ID,
    Invoice,
    InvoiceDraft,
    InvoiceStatus,
    StockItem,
    StockItemInput,
)
from invoice_ledger.services.pdf_generator import generate_pdf, invoice_filename
from invoice_ledger.services.storage import JsonFileStore
from invoice_ledger.services.store import LedgerStore

import json


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            log_data.update(record.extra)
        return json.dumps(log_data, ensure_ascii=False, default=str)


# Supprime les handlers existants et applique le notre
root_logger = logging.getLogger()
root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
for h in root_logger.handlers[:]:
    root_logger.removeHandler(h)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
root_logger.addHandler(handler)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Invoice Ledger",
    description="Registre de facturation mono-utilisateur : société, clients, catalogue, factures",
    version="1.0.0"
)

# Dossier de stockage
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", "./storage"))
store = LedgerStore(JsonFileStore(STORAGE_DIR))

# Clé API
API_KEY = os.getenv("API_KEY", "dev-secret-key")
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


# Gestionnaire erreurs de validation JSON (422)
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Données invalides",
            "detail": str(exc.errors())
        }
    )


@app.exception_handler(NotFound)
async def not_found_handler(request, exc):
    return JSONResponse(status_code=404, content={"error": "Introuvable", "kind": exc.kind, "id": exc.entity_id})


@app.exception_handler(PreconditionFailed)
async def precondition_handler(request, exc):
    return JSONResponse(status_code=409, content={"error": "Prérequis manquant", "message": str(exc)})


@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request, exc):
    return JSONResponse(status_code=400, content={"error": "Données invalides", "message": str(exc)})


@app.exception_handler(PersistenceUnavailable)
async def persistence_handler(request, exc):
    logger.error(f"Stockage indisponible : {exc}")
    content = {"error": "Stockage indisponible", "message": str(exc)}
    if exc.result is not None:
        content["result"] = exc.result.to_json_dict()
    return JSONResponse(status_code=503, content=content)


def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    if api_key and api_key == API_KEY:
        return "operator"
    raise HTTPException(
        status_code=403,
        detail={"error": "Clé API invalide ou manquante"}
    )


class StatusChange(BaseModel):
    status: InvoiceStatus


# Préfixe v1 pour tous les endpoints
v1 = APIRouter(prefix="/v1", dependencies=[Security(verify_api_key)])


@app.get("/health")
def health_check():
    return {"status": "ok", "version": "1.0.0"}


# Profil société

@v1.get("/company-profile")
def get_company_profile():
    if store.company_profile is None:
        raise NotFound("company profile", DEFAULT_COMPANY_PROFILE_ID)
    return store.company_profile.to_json_dict()


@v1.put("/company-profile")
def save_company_profile(profile: CompanyProfileInput):
    return store.set_company_profile(profile).to_json_dict()


# Clients

@v1.get("/clients")
def list_clients():
    return [c.to_json_dict() for c in store.clients]


@v1.post("/clients", status_code=201)
def create_client(client: ClientInput):
    return store.add_client(client).to_json_dict()


@v1.get("/clients/{client_id}")
def get_client(client_id: str):
    client = store.get_client_by_id(client_id)
    if client is None:
        raise NotFound("client", client_id)
    return client.to_json_dict()


@v1.put("/clients/{client_id}")
def update_client(client_id: str, client: ClientInput):
    updated = store.update_client(Client(**client.model_dump(), id=client_id))
    if updated is None:
        raise NotFound("client", client_id)
    return updated.to_json_dict()


@v1.delete("/clients/{client_id}", status_code=204)
def delete_client(client_id: str):
    store.delete_client(client_id)
    return Response(status_code=204)


# Catalogue

@v1.get("/items")
def list_items():
    return [i.to_json_dict() for i in store.items]


@v1.post("/items", status_code=201)
def create_item(item: StockItemInput):
    return store.add_item(item).to_json_dict()


@v1.get("/items/{item_id}")
def get_item(item_id: str):
    item = store.get_item_by_id(item_id)
    if item is None:
        raise NotFound("stock item", item_id)
    return item.to_json_dict()


@v1.put("/items/{item_id}")
def update_item(item_id: str, item: StockItemInput):
    updated = store.update_item(StockItem(**item.model_dump(), id=item_id))
    if updated is None:
        raise NotFound("stock item", item_id)
    return updated.to_json_dict()


@v1.delete("/items/{item_id}", status_code=204)
def delete_item(item_id: str):
    store.delete_item(item_id)
    return Response(status_code=204)


# Factures

@v1.get("/invoices")
def list_invoices(q: str = "", status: Optional[InvoiceStatus] = None):
    invoices = store.search_invoices(q, status)
    return {"count": len(invoices), "invoices": [i.to_json_dict() for i in invoices]}


@v1.get("/invoices/next-number")
def next_invoice_number():
    return {"invoiceNumber": store.get_new_invoice_number()}


@v1.post("/invoices", status_code=201)
def create_invoice(draft: InvoiceDraft):
    invoice = store.add_invoice(draft)
    logger.info("Facture enregistrée", extra={"extra": {"invoice_number": invoice.invoice_number}})
    return invoice.to_json_dict()


@v1.get("/invoices/{invoice_id}")
def get_invoice(invoice_id: str):
    return store.require_invoice(invoice_id).to_json_dict()


@v1.put("/invoices/{invoice_id}")
def update_invoice(invoice_id: str, invoice: Invoice):
    if invoice.id != invoice_id:
        raise ValidationFailed(f"body id {invoice.id!r} does not match {invoice_id!r}")
    return store.update_invoice(invoice).to_json_dict()


@v1.post("/invoices/{invoice_id}/status")
def change_invoice_status(invoice_id: str, change: StatusChange):
    return store.mark_invoice_status(invoice_id, change.status).to_json_dict()


@v1.delete("/invoices/{invoice_id}", status_code=204)
def delete_invoice(invoice_id: str):
    store.delete_invoice(invoice_id)
    return Response(status_code=204)


@v1.get("/invoices/{invoice_id}/pdf")
def download_invoice(invoice_id: str):
    invoice = store.require_invoice(invoice_id)
    pdf_bytes = generate_pdf(invoice)
    filename = invoice_filename(invoice)
    logger.info("PDF généré", extra={"extra": {"invoice_number": invoice.invoice_number, "filename": filename}})
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@v1.get("/dashboard")
def dashboard():
    summary = store.summary()
    return {
        "totalInvoices": summary["total_invoices"],
        "totalPaid": float(summary["total_paid"]),
        "totalUnpaid": float(summary["total_unpaid"]),
        "drafts": summary["drafts"],
    }


# Enregistrement du router v1
app.include_router(v1)
