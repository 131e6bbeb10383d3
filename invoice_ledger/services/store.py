# invoice_ledger/services/store.py
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from invoice_ledger.errors import NotFound, PersistenceUnavailable, PreconditionFailed, ValidationFailed
from invoice_ledger.models.invoice import (
    DEFAULT_COMPANY_PROFILE_ID,
    DEFAULT_TERMS,
    Client,
    ClientInput,
    CompanyProfile,
    CompanyProfileInput,
    Invoice,
    InvoiceDraft,
    InvoiceLineDraft,
    InvoiceLineItem,
    InvoiceStatus,
    StockItem,
    StockItemInput,
    TaxRate,
)
from invoice_ledger.services.numbering import new_id, next_invoice_number, provisional_invoice_number
from invoice_ledger.services.storage import KeyValueStore
from invoice_ledger.services.totals import recalculate_invoice

logger = logging.getLogger(__name__)

COMPANY_PROFILE_KEY = "invoiceApp_companyProfile"
CLIENTS_KEY = "invoiceApp_clients"
STOCK_ITEMS_KEY = "invoiceApp_stockItems"
INVOICES_KEY = "invoiceApp_invoices"
LAST_SUFFIX_KEY = "invoiceApp_lastInvoiceNumberSuffix"


def _validate(model, data):
    """Coerce form input into `model`, reporting problems as ValidationFailed."""
    if isinstance(data, model):
        return data
    try:
        if isinstance(data, dict):
            return model.model_validate(data)
        return model.model_validate(data.model_dump())
    except ValidationError as e:
        raise ValidationFailed(str(e)) from e


class LedgerStore:
    """
    Single source of truth for the company profile, clients, catalog items and
    invoices.

    Every mutation is validated before anything changes, then the affected
    collections are replaced and written through to `storage`. The in-memory
    collections stay authoritative when a write fails: the failure is logged
    and raised as PersistenceUnavailable with the operation's result attached.
    """

    def __init__(self, storage: KeyValueStore, clock: Callable[[], date] = date.today):
        self.storage = storage
        self.clock = clock
        self._company_profile: Optional[CompanyProfile] = None
        self._clients: List[Client] = []
        self._items: List[StockItem] = []
        self._invoices: List[Invoice] = []
        self._last_suffix = 0
        self.load()

    # -- persistence ---------------------------------------------------------

    def load(self) -> None:
        try:
            raw_profile = self.storage.get(COMPANY_PROFILE_KEY)
            self._company_profile = CompanyProfile.model_validate(raw_profile) if raw_profile else None
            self._clients = [Client.model_validate(c) for c in self.storage.get(CLIENTS_KEY, [])]
            self._items = [StockItem.model_validate(i) for i in self.storage.get(STOCK_ITEMS_KEY, [])]
            self._invoices = [Invoice.model_validate(i) for i in self.storage.get(INVOICES_KEY, [])]
            self._last_suffix = int(self.storage.get(LAST_SUFFIX_KEY, 0) or 0)
        except (TypeError, ValueError) as e:
            raise PersistenceUnavailable("load", f"stored data is malformed: {e}") from e
        logger.info("Registre chargé", extra={"extra": {
            "clients": len(self._clients),
            "items": len(self._items),
            "invoices": len(self._invoices),
            "last_suffix": self._last_suffix,
        }})

    def _serialize(self, key: str):
        if key == COMPANY_PROFILE_KEY:
            return self._company_profile.to_json_dict() if self._company_profile else None
        if key == CLIENTS_KEY:
            return [c.to_json_dict() for c in self._clients]
        if key == STOCK_ITEMS_KEY:
            return [i.to_json_dict() for i in self._items]
        if key == INVOICES_KEY:
            return [i.to_json_dict() for i in self._invoices]
        if key == LAST_SUFFIX_KEY:
            return self._last_suffix
        raise KeyError(key)

    def _persist(self, keys, result=None):
        for key in keys:
            try:
                self.storage.set(key, self._serialize(key))
            except PersistenceUnavailable as e:
                logger.warning("Écriture non durable, état conservé en mémoire",
                               extra={"extra": {"key": key, "error": str(e)}})
                raise PersistenceUnavailable(key, str(e), result=result) from e
        return result

    def flush(self) -> None:
        """Rewrite every collection; use after a PersistenceUnavailable."""
        self._persist([COMPANY_PROFILE_KEY, CLIENTS_KEY, STOCK_ITEMS_KEY, INVOICES_KEY, LAST_SUFFIX_KEY])

    # -- read access ---------------------------------------------------------

    @property
    def company_profile(self) -> Optional[CompanyProfile]:
        return self._company_profile

    @property
    def clients(self) -> List[Client]:
        return list(self._clients)

    @property
    def items(self) -> List[StockItem]:
        return list(self._items)

    @property
    def invoices(self) -> List[Invoice]:
        return list(self._invoices)

    @property
    def last_invoice_suffix(self) -> int:
        return self._last_suffix

    def get_client_by_id(self, client_id: str) -> Optional[Client]:
        return next((c for c in self._clients if c.id == client_id), None)

    def get_item_by_id(self, item_id: str) -> Optional[StockItem]:
        return next((i for i in self._items if i.id == item_id), None)

    def get_invoice_by_id(self, invoice_id: str) -> Optional[Invoice]:
        return next((i for i in self._invoices if i.id == invoice_id), None)

    def require_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.get_invoice_by_id(invoice_id)
        if invoice is None:
            raise NotFound("invoice", invoice_id)
        return invoice

    def get_new_invoice_number(self) -> str:
        return provisional_invoice_number(self.clock().year, self._last_suffix)

    # -- company profile -----------------------------------------------------

    def set_company_profile(self, data: Union[CompanyProfileInput, dict]) -> CompanyProfile:
        """Create or replace the singleton profile; existing invoices keep their snapshots."""
        profile_input = _validate(CompanyProfileInput, data)
        profile = CompanyProfile(**profile_input.model_dump(exclude={"id"}), id=DEFAULT_COMPANY_PROFILE_ID)
        created = self._company_profile is None
        self._company_profile = profile
        logger.info("Profil société créé" if created else "Profil société mis à jour",
                    extra={"extra": {"company": profile.company_name}})
        return self._persist([COMPANY_PROFILE_KEY], profile)

    update_company_profile = set_company_profile

    # -- clients -------------------------------------------------------------

    def add_client(self, data: Union[ClientInput, dict]) -> Client:
        client_input = _validate(ClientInput, data)
        client = Client(**client_input.model_dump(exclude={"id"}), id=new_id())
        self._clients = self._clients + [client]
        logger.info("Client ajouté", extra={"extra": {"client_id": client.id, "name": client.name}})
        return self._persist([CLIENTS_KEY], client)

    def update_client(self, data: Union[Client, dict]) -> Optional[Client]:
        client = _validate(Client, data)
        if self.get_client_by_id(client.id) is None:
            return None
        self._clients = [client if c.id == client.id else c for c in self._clients]
        logger.info("Client mis à jour", extra={"extra": {"client_id": client.id}})
        return self._persist([CLIENTS_KEY], client)

    def delete_client(self, client_id: str) -> None:
        self._clients = [c for c in self._clients if c.id != client_id]
        logger.info("Client supprimé", extra={"extra": {"client_id": client_id}})
        self._persist([CLIENTS_KEY])

    # -- catalog -------------------------------------------------------------

    def add_item(self, data: Union[StockItemInput, dict]) -> StockItem:
        item_input = _validate(StockItemInput, data)
        item = StockItem(**item_input.model_dump(exclude={"id"}), id=new_id())
        self._items = self._items + [item]
        logger.info("Article ajouté", extra={"extra": {"item_id": item.id, "name": item.name}})
        return self._persist([STOCK_ITEMS_KEY], item)

    def update_item(self, data: Union[StockItem, dict]) -> Optional[StockItem]:
        item = _validate(StockItem, data)
        if self.get_item_by_id(item.id) is None:
            return None
        self._items = [item if i.id == item.id else i for i in self._items]
        logger.info("Article mis à jour", extra={"extra": {"item_id": item.id}})
        return self._persist([STOCK_ITEMS_KEY], item)

    def delete_item(self, item_id: str) -> None:
        self._items = [i for i in self._items if i.id != item_id]
        logger.info("Article supprimé", extra={"extra": {"item_id": item_id}})
        self._persist([STOCK_ITEMS_KEY])

    # -- invoices ------------------------------------------------------------

    def _require_prerequisites(self, client_id: str):
        if self._company_profile is None:
            raise PreconditionFailed("company profile is not set")
        client = self.get_client_by_id(client_id)
        if client is None:
            raise NotFound("client", client_id)
        return self._company_profile, client

    def _resolve_line(self, line: InvoiceLineDraft) -> InvoiceLineItem:
        """Fill omitted line fields from the catalog entry the line points to."""
        stock_item = self.get_item_by_id(line.stock_item_id) if line.stock_item_id else None
        needs_catalog = line.item_name is None or line.unit_price is None or line.tax_rate is None
        if line.stock_item_id and stock_item is None and needs_catalog:
            raise NotFound("stock item", line.stock_item_id)

        def pick(own, field, default):
            if own is not None:
                return own
            if stock_item is not None:
                return getattr(stock_item, field)
            return default

        return InvoiceLineItem(
            stock_item_id=line.stock_item_id or "",
            item_name=pick(line.item_name, "name", "N/A"),
            description=pick(line.description, "description", ""),
            quantity=line.quantity,
            unit_price=pick(line.unit_price, "unit_price", Decimal("0")),
            tax_rate=pick(line.tax_rate, "tax_rate", TaxRate.RATE_0),
        )

    def _finalize(self, invoice: Invoice, previous: Optional[Invoice]):
        """
        Assign the permanent number when an invoice leaves Draft for the first
        time. Returns the invoice to store and the suffix to persist.
        """
        if previous is not None and previous.is_finalized:
            return invoice.model_copy(update={
                "invoice_number": previous.invoice_number,
                "finalized_on": previous.finalized_on,
            }), self._last_suffix
        if invoice.status == InvoiceStatus.DRAFT:
            # only a hand-typed number is kept; the provisional one is computed on read
            return invoice.model_copy(update={"finalized_on": None}), self._last_suffix
        today = self.clock()
        number, suffix = next_invoice_number(today.year, self._last_suffix)
        logger.info("Facture finalisée", extra={"extra": {"invoice_id": invoice.id, "invoice_number": number}})
        return invoice.model_copy(update={"invoice_number": number, "finalized_on": today}), suffix

    def _commit_invoice(self, invoice: Invoice, suffix: int, replace: bool) -> Invoice:
        if replace:
            self._invoices = [invoice if i.id == invoice.id else i for i in self._invoices]
        else:
            self._invoices = self._invoices + [invoice]
        keys = [INVOICES_KEY]
        if suffix != self._last_suffix:
            self._last_suffix = suffix
            # counter first: a failed write may leave a gap, never a reused number
            keys.insert(0, LAST_SUFFIX_KEY)
        return self._persist(keys, invoice)

    def add_invoice(self, data: Union[InvoiceDraft, dict]) -> Invoice:
        draft = _validate(InvoiceDraft, data)
        profile, client = self._require_prerequisites(draft.client_id)
        lines = [self._resolve_line(line) for line in draft.items]

        invoice = Invoice(
            id=new_id(),
            invoice_number=draft.invoice_number or "",
            bill_date=draft.bill_date,
            due_date=draft.due_date,
            client_id=client.id,
            client_details=client.model_copy(deep=True),
            company_profile_snapshot=profile.model_copy(deep=True),
            items=lines,
            discount_type=draft.discount_type,
            discount_value=draft.discount_value,
            terms_and_conditions=draft.terms_and_conditions or profile.terms_and_conditions or DEFAULT_TERMS,
            notes=draft.notes,
            status=draft.status,
        )
        invoice, suffix = self._finalize(recalculate_invoice(invoice), None)
        logger.info("Facture créée", extra={"extra": {
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "client": client.name,
            "grand_total": str(invoice.grand_total),
        }})
        return self._commit_invoice(invoice, suffix, replace=False)

    def update_invoice(self, data: Union[Invoice, dict]) -> Invoice:
        """
        Replace a stored invoice with an edited version. Totals are recomputed,
        snapshots are kept unless the caller dropped them, and a finalized
        invoice keeps its number.
        """
        invoice = _validate(Invoice, data)
        previous = self.require_invoice(invoice.id)
        profile, client = self._require_prerequisites(invoice.client_id)

        invoice = invoice.model_copy(update={
            "client_details": invoice.client_details or client.model_copy(deep=True),
            "company_profile_snapshot": invoice.company_profile_snapshot or profile.model_copy(deep=True),
        })
        invoice, suffix = self._finalize(recalculate_invoice(invoice), previous)
        logger.info("Facture mise à jour", extra={"extra": {
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "grand_total": str(invoice.grand_total),
        }})
        return self._commit_invoice(invoice, suffix, replace=True)

    def mark_invoice_status(self, invoice_id: str, status: Union[InvoiceStatus, str]) -> Invoice:
        try:
            status = InvoiceStatus(status)
        except ValueError:
            raise ValidationFailed(f"unknown invoice status: {status!r}") from None
        previous = self.require_invoice(invoice_id)
        invoice, suffix = self._finalize(previous.model_copy(update={"status": status}), previous)
        logger.info("Statut modifié", extra={"extra": {
            "invoice_id": invoice_id, "from": previous.status.value, "to": status.value,
        }})
        return self._commit_invoice(invoice, suffix, replace=True)

    def delete_invoice(self, invoice_id: str) -> None:
        self._invoices = [i for i in self._invoices if i.id != invoice_id]
        logger.info("Facture supprimée", extra={"extra": {"invoice_id": invoice_id}})
        self._persist([INVOICES_KEY])

    # -- dashboard -----------------------------------------------------------

    def search_invoices(self, term: str = "", status: Optional[InvoiceStatus] = None) -> List[Invoice]:
        """Match on number, client name or grand total; most recent bill date first."""
        term = (term or "").lower()

        def matches(invoice: Invoice) -> bool:
            client_name = invoice.client_details.name if invoice.client_details else ""
            if term and not (
                term in invoice.invoice_number.lower()
                or term in client_name.lower()
                or term in str(invoice.grand_total)
            ):
                return False
            return status is None or invoice.status == status

        found = [i for i in self._invoices if matches(i)]
        return sorted(found, key=lambda i: i.bill_date, reverse=True)

    def summary(self) -> Dict[str, object]:
        paid = sum((i.grand_total for i in self._invoices if i.status == InvoiceStatus.PAID), Decimal("0"))
        outstanding = sum(
            (i.grand_total for i in self._invoices if i.status in (InvoiceStatus.UNPAID, InvoiceStatus.OVERDUE)),
            Decimal("0"),
        )
        return {
            "total_invoices": len(self._invoices),
            "total_paid": paid,
            "total_unpaid": outstanding,
            "drafts": sum(1 for i in self._invoices if i.status == InvoiceStatus.DRAFT),
        }
