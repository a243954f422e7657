from __future__ import annotations

from ..errors import ValidationError
from ..models import Setting
from agroledger.time_utils import utcnow
from .ledger_store import LedgerStore

CREDIT_FEE_KEY = "credit_fee"
DEBIT_FEE_KEY = "debit_fee"

FEE_KEY_BY_METHOD = {
    "CREDIT_CARD": CREDIT_FEE_KEY,
    "DEBIT_CARD": DEBIT_FEE_KEY,
}

MAX_KEY_LENGTH = 128


def get_all(store: LedgerStore) -> dict[str, str | None]:
    return {s.key: s.value for s in store.all_rows(Setting)}


def get_value(store: LedgerStore, key: str, default: str | None = None) -> str | None:
    setting = store.get_setting(key)
    if setting is None:
        return default
    return setting.value


def set_value(store: LedgerStore, key: str, value) -> Setting:
    """Upsert a setting; values are stored verbatim as text."""
    key = (key or "").strip()
    if not key:
        raise ValidationError("Setting key is required")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"Setting key exceeds max length {MAX_KEY_LENGTH}")

    with store.atomic():
        setting = store.get_setting(key)
        if setting is None:
            setting = store.add(Setting(key=key))
        setting.value = None if value is None else str(value)
        setting.updated_at = utcnow()
    return setting


def card_fee_percent(store: LedgerStore, payment_method: str, defaults: dict[str, float] | None = None) -> float:
    """
    Fee percentage charged for a card payment method.

    A credit_fee / debit_fee setting wins over the configured default.
    Non-card methods have no fee.
    """
    key = FEE_KEY_BY_METHOD.get(payment_method)
    if key is None:
        return 0.0

    raw = get_value(store, key)
    if raw is not None and str(raw).strip() != "":
        try:
            return float(str(raw).replace(",", "."))
        except ValueError:
            raise ValidationError(f"Setting {key} must be a number, got {raw!r}")

    return float((defaults or {}).get(payment_method, 0.0))
