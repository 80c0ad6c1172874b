import csv
import sys
from decimal import Decimal, InvalidOperation

from client_ledger import Ledger, LedgerError, TransactionKind, TransactionRecord

MAX_CLIENT_ID = 65535
MAX_TX_ID = 4294967295

OUTPUT_FIELDNAMES = ['client', 'available', 'held', 'total', 'locked']


class TransactionProcessor:

    def __init__(self, filename=None):
        self.filename = filename
        self.ledgers = {}

        self.type_field_idx = 0
        self.client_field_idx = 1
        self.tx_field_idx = 2
        self.amount_field_idx = 3

    def read_transaction_data(self):
        if not self.filename:
            raise RuntimeError("no filename to read has been set. aborting.")
        # undecodable bytes survive as surrogates so only the rows holding them fail to parse
        with open(self.filename, newline="", encoding="utf-8", errors="surrogateescape") as file:
            self.process_records(self.read_records(file))

    def read_records(self, file):
        csvreader = csv.reader(file)
        first_row = True
        while True:
            try:
                row = next(csvreader)
            except StopIteration:
                return
            except csv.Error as e:
                self.error_log(f"row format error: {e} on line {csvreader.line_num}")
                continue
            if not row or all(not field.strip() for field in row):
                continue
            if first_row:
                first_row = False
                if self.discover_field_order(row):
                    continue
            record = self.attempt_parse_row(row)
            if record is not None:
                yield record

    def discover_field_order(self, header):
        """
        Take the field order from a header row. Returns False when the row does not
        look like a header, in which case the default order is kept.
        """
        names = [name.strip().lower() for name in header]
        if not {"type", "client", "tx"}.issubset(names):
            return False

        self.type_field_idx = names.index("type")
        self.client_field_idx = names.index("client")
        self.tx_field_idx = names.index("tx")
        self.amount_field_idx = names.index("amount") if "amount" in names else None
        return True

    def get_ledger(self, client_id):
        if client_id not in self.ledgers:
            self.ledgers[client_id] = Ledger(client_id)
        return self.ledgers[client_id]

    def process_records(self, records):
        for record in records:
            self.process_record(record)

    def process_record(self, record):
        ledger = self.get_ledger(record.account)
        try:
            ledger.apply(record)
        except LedgerError as e:
            self.error_log(str(e), record)

    def error_log(self, message, record=None):
        if record is not None:
            # zero amounts are still reported, e.g. "deposit of $0"
            amount_detail = "" if record.amount is None else f" of ${record.amount}"
            print(f"tx_id {record.id}, client_id {record.account}, failed to apply {record.kind.value}"
                  f"{amount_detail}: {message}", file=sys.stderr)
        else:
            print(f"transaction error: {message}", file=sys.stderr)

    def attempt_parse_row(self, row):
        try:
            return self.parse_row(row)
        except (ValueError, InvalidOperation, IndexError) as e:
            self.error_log(f"field format error: {e} while attempting to parse row like: {repr(row)}")
            return None

    def parse_row(self, row):
        kind = TransactionKind(row[self.type_field_idx].strip().lower())
        client_id = int(row[self.client_field_idx].strip())
        tx_id = int(row[self.tx_field_idx].strip())

        if not (0 <= client_id <= MAX_CLIENT_ID):
            raise ValueError(f"invalid client_id {client_id}")
        if not (0 <= tx_id <= MAX_TX_ID):
            raise ValueError(f"invalid tx_id {tx_id}")

        return TransactionRecord(tx_id, client_id, kind, self.get_amount(row))

    def get_amount(self, row):
        # the amount column may be missing entirely on dispute/resolve/chargeback rows
        if self.amount_field_idx is None or self.amount_field_idx >= len(row):
            return None
        amount = row[self.amount_field_idx].strip()
        if not amount:
            return None
        return Decimal(amount)

    def snapshots(self):
        return [self.ledgers[client_id].snapshot() for client_id in sorted(self.ledgers)]

    def get_account_snapshots(self):
        self.read_transaction_data()
        return self.snapshots()

    def write_output(self, stream=None):
        csvwriter = csv.writer(stream or sys.stdout, lineterminator="\n")
        csvwriter.writerow(OUTPUT_FIELDNAMES)
        for snapshot in self.snapshots():
            csvwriter.writerow(snapshot.to_row())

    def generate_output(self, stream=None):
        self.read_transaction_data()
        self.write_output(stream)


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1:
        print("usage: tx-processor <transactions.csv>", file=sys.stderr)
        return 2

    processor = TransactionProcessor(args[0])
    try:
        processor.read_transaction_data()
    except OSError as e:
        print(f"cannot read input file: {e}", file=sys.stderr)
        return 1

    try:
        processor.write_output(sys.stdout)
    except (OSError, csv.Error) as e:
        processor.error_log(f"failed to write output: {e}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
