from dataclasses import dataclass
from decimal import Context, Decimal, MAX_EMAX, MAX_PREC, MIN_EMIN, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Dict, Optional

MONEY_PRECISION = Decimal("0.0001")

# balances have no upper bound, so sums and rounding must never lose digits
MONEY_CONTEXT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN)


class TransactionKind(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"


# kinds that move money themselves and so carry an amount
AMOUNT_KINDS = {TransactionKind.DEPOSIT, TransactionKind.WITHDRAWAL}


@dataclass(frozen=True)
class TransactionRecord:
    id: int
    account: int
    kind: TransactionKind
    amount: Optional[Decimal] = None


@dataclass
class StoredTransaction:
    id: int
    kind: TransactionKind
    amount: Decimal
    disputed: bool = False


@dataclass(frozen=True)
class AccountSnapshot:
    client: int
    available: Decimal
    held: Decimal
    total: Decimal
    locked: bool

    def to_row(self):
        return [
            self.client,
            format_money(self.available),
            format_money(self.held),
            format_money(self.total),
            str(self.locked).lower(),
        ]


def format_money(value):
    """Render a balance rounded to four decimal places, e.g. 1.10001 -> '1.1', 2 -> '2.0'."""
    with localcontext(MONEY_CONTEXT):
        rounded = value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)
        if rounded == 0:
            # avoid rendering "-0.0"
            rounded = Decimal(0)
        text = f"{rounded.normalize():f}"
    if "." not in text:
        text += ".0"
    return text


class LedgerError(Exception):
    """Base exception for a transaction the ledger refused to apply."""
    message = "transaction rejected"

    def __init__(self, message=None):
        super().__init__(message or self.message)


class AccountLocked(LedgerError):
    message = "account is locked"


class TransactionNotFound(LedgerError):
    message = "tx not found"


class InsufficientFunds(LedgerError):
    message = "insufficient funds"


class AmountMissing(LedgerError):
    message = "amount is required"


class AmountAmbiguous(LedgerError):
    message = "amount is ambiguous and must be omitted"


class InvalidAmount(LedgerError):
    message = "amount must be a non-negative number"


class InvalidState(LedgerError):
    """Raised when the referenced tx has the wrong disputed flag for the operation."""
    message = "tx is in the wrong state"


class InvalidKind(LedgerError):
    message = "tx is not a deposit"


class DuplicateTransaction(LedgerError):
    message = "duplicates existing tx_id"


class Ledger:
    """
    Balances of a single client account.

    Deposits and withdrawals are kept by tx id so that later disputes, resolves
    and chargebacks can reference them. A chargeback locks the ledger for good.
    """

    def __init__(self, account_id):
        self.account_id = account_id
        self.available = Decimal(0)
        self.held = Decimal(0)
        self.total = Decimal(0)
        self.locked = False
        self.transactions: Dict[int, StoredTransaction] = {}

    def apply(self, record: TransactionRecord) -> None:
        if self.locked:
            raise AccountLocked()

        kind = record.kind
        if kind in AMOUNT_KINDS:
            if record.amount is None:
                raise AmountMissing()
            if not record.amount.is_finite() or record.amount < 0:
                raise InvalidAmount()
        elif record.amount is not None:
            raise AmountAmbiguous()

        with localcontext(MONEY_CONTEXT):
            if kind is TransactionKind.DEPOSIT:
                self.deposit(record)
            elif kind is TransactionKind.WITHDRAWAL:
                self.withdraw(record)
            elif kind is TransactionKind.DISPUTE:
                self.dispute(record.id)
            elif kind is TransactionKind.RESOLVE:
                self.resolve(record.id)
            else:
                self.chargeback(record.id)

    def deposit(self, record):
        self.check_unique(record.id)
        self.available += record.amount
        self.total += record.amount
        self.add_transaction(record)

    def withdraw(self, record):
        self.check_unique(record.id)
        available = self.available - record.amount
        if available < 0:
            raise InsufficientFunds()

        self.available = available
        self.total -= record.amount
        self.add_transaction(record)

    def dispute(self, tx_id):
        tx = self.get_transaction(tx_id)
        if tx.disputed:
            raise InvalidState("tx is already disputed")
        if tx.kind is not TransactionKind.DEPOSIT:
            raise InvalidKind()

        tx.disputed = True
        self.available -= tx.amount
        self.held += tx.amount

    def resolve(self, tx_id):
        tx = self.get_transaction(tx_id)
        if not tx.disputed:
            raise InvalidState("tx is not disputed")

        tx.disputed = False
        self.available += tx.amount
        self.held -= tx.amount

    def chargeback(self, tx_id):
        tx = self.get_transaction(tx_id)
        if not tx.disputed:
            raise InvalidState("tx is not disputed")

        self.held -= tx.amount
        self.total -= tx.amount
        self.locked = True

    def get_transaction(self, tx_id):
        tx = self.transactions.get(tx_id)
        if tx is None:
            raise TransactionNotFound()
        return tx

    def check_unique(self, tx_id):
        if tx_id in self.transactions:
            raise DuplicateTransaction()

    def add_transaction(self, record):
        self.transactions[record.id] = StoredTransaction(record.id, record.kind, record.amount)

    def snapshot(self):
        return AccountSnapshot(self.account_id, self.available, self.held, self.total, self.locked)
