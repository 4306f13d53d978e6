"""
Tests for CSV and Excel exports.
"""
from datetime import date

import pytest
from httpx import AsyncClient

from stitchcraft.core.exports import (
    CLIENT_HEADERS,
    INVOICE_HEADERS,
    ExportFormat,
    generate_csv,
    generate_excel_xml,
    render_export,
)

from .conftest import add_worker


class TestExportRendering:
    """Test suite for export formatting."""

    @pytest.mark.unit
    def test_csv_quotes_cells_and_blanks_none(self) -> None:
        """Test data cells are quoted and None renders empty."""
        body = generate_csv(["Name", "Notes"], [["Ama \"Kente\" Mensah", None]])

        lines = body.split("\n")
        assert lines[0] == "Name,Notes"
        assert lines[1] == '"Ama ""Kente"" Mensah",""'

    @pytest.mark.unit
    def test_excel_types_numbers_but_keeps_phones_as_text(self) -> None:
        """Test amounts become Number cells while phone numbers stay String."""
        body = generate_excel_xml(["Phone", "Amount"], [["0241234567", "150.00"]])

        assert '<Data ss:Type="String">0241234567</Data>' in body
        assert '<Data ss:Type="Number">150.00</Data>' in body

    @pytest.mark.unit
    def test_excel_escapes_markup(self) -> None:
        """Test text cells are XML-escaped."""
        body = generate_excel_xml(["Name"], [["Kofi & Sons <Ltd>"]])

        assert "Kofi &amp; Sons &lt;Ltd&gt;" in body

    @pytest.mark.unit
    def test_render_filenames(self) -> None:
        """Test attachment names carry the resource and date."""
        _, media_type, filename = render_export(
            "clients", CLIENT_HEADERS, [], ExportFormat.CSV, today=date(2026, 1, 5)
        )
        assert filename == "clients-2026-01-05.csv"
        assert media_type.startswith("text/csv")

        _, media_type, filename = render_export(
            "clients", CLIENT_HEADERS, [], ExportFormat.XLSX, today=date(2026, 1, 5)
        )
        assert filename == "clients-2026-01-05.xls"
        assert media_type == "application/vnd.ms-excel"


class TestExportApi:
    """Integration tests for the export endpoints."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_clients_csv(self, client: AsyncClient, workshop, other_workshop) -> None:
        """Test the client export includes only the caller's clients with order counts."""
        response = await client.get("/api/v1/clients/export", headers=workshop.headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="clients-')
        assert disposition.endswith('.csv"')

        lines = response.text.split("\n")
        assert lines[0] == ",".join(CLIENT_HEADERS)
        assert len(lines) == 2
        assert '"+233241234567"' in lines[1]
        assert '"1"' in lines[1]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_payments_xlsx(self, client: AsyncClient, workshop) -> None:
        """Test the Excel variant of the payments export."""
        await client.post(
            "/api/v1/payments",
            json={
                "orderId": str(workshop.order.id),
                "amount": "150.00",
                "method": "MOBILE_MONEY_MTN",
                "transactionId": "MTN-EXPORT-1",
            },
            headers=workshop.headers,
        )

        response = await client.get(
            "/api/v1/payments/export", params={"format": "xlsx"}, headers=workshop.headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/vnd.ms-excel")
        assert response.headers["content-disposition"].endswith('.xls"')
        assert "<Workbook" in response.text
        assert "MTN-EXPORT-1" in response.text
        assert "SC-2601-0001" in response.text

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invoices_csv_empty(self, client: AsyncClient, workshop) -> None:
        """Test an empty export is just the header row."""
        response = await client.get("/api/v1/invoices/export", headers=workshop.headers)

        assert response.status_code == 200
        assert response.text == ",".join(INVOICE_HEADERS)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_workers_cannot_export(self, client: AsyncClient, db, workshop) -> None:
        """Test exports are limited to tailor accounts."""
        headers = await add_worker(db, workshop, permissions=["clients:read"])

        response = await client.get("/api/v1/clients/export", headers=headers)

        assert response.status_code == 403

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unknown_format_rejected(self, client: AsyncClient, workshop) -> None:
        """Test only csv and xlsx are accepted."""
        response = await client.get(
            "/api/v1/clients/export", params={"format": "pdf"}, headers=workshop.headers
        )

        assert response.status_code == 400
