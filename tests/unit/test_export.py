import pytest
import pandas as pd
from decimal import Decimal

from scrap_ledger.ledger.normalizer import normalize
from scrap_ledger.reports.export import REPORT_COLUMNS, export_records, records_to_frame

@pytest.fixture
def records():
    return [
        normalize({
            "kind": "sell",
            "invoiceNumber": "SSK-0001",
            "partyName": "Steel Mills",
            "items": [{"quantityKg": "50", "unitRate": "120", "costRate": "100"}],
            "paidAmount": "1000",
            "createdAt": "2026-03-15T09:00:00",
        }),
        normalize({
            "kind": "purchase",
            "invoiceNumber": "PSK-0001",
            "items": [{"quantityKg": "10", "unitRate": "100"}],
            "createdAt": "2026-03-14T09:00:00",
        }),
    ]

@pytest.mark.unit
class TestRecordsToFrame:

    def test_columns_and_values(self, records):
        df = records_to_frame(records)

        assert list(df.columns) == REPORT_COLUMNS
        assert len(df) == 2
        assert df.loc[0, "Invoice"] == "SSK-0001"
        assert df.loc[0, "Type"] == "SELL"
        assert df.loc[0, "Due"] == 5000.0
        assert df.loc[0, "Profit"] == 1000.0

    def test_purchase_has_no_profit_and_placeholder_party(self, records):
        df = records_to_frame(records)

        assert pd.isna(df.loc[1, "Profit"])
        assert df.loc[1, "Party"] == "—"

    def test_empty(self):
        df = records_to_frame([])

        assert df.empty
        assert list(df.columns) == REPORT_COLUMNS


@pytest.mark.unit
class TestExportRecords:

    def test_csv(self, records, tmp_path):
        path = export_records(records, tmp_path / "report.csv")

        df = pd.read_csv(path)
        assert list(df["Invoice"]) == ["SSK-0001", "PSK-0001"]
        assert df["Total"].sum() == 7000.0

    def test_xlsx(self, records, tmp_path):
        path = export_records(records, tmp_path / "out" / "report.xlsx")

        df = pd.read_excel(path, sheet_name="Records")
        assert list(df.columns) == REPORT_COLUMNS
        assert len(df) == 2

    def test_unsupported_suffix(self, records, tmp_path):
        with pytest.raises(ValueError, match=".pdf"):
            export_records(records, tmp_path / "report.pdf")
