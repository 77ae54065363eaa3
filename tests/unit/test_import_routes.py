"""
API tests for the import wizard and pricing routes.

Run: pytest tests/unit/test_import_routes.py -v
"""

import json

import pytest

from tests.factories import SpreadsheetFactory, price_list_rows, TENANT_ID

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
MAPPING = {"product_name": 0, "category": 1, "supplier": 2, "price": 3}


@pytest.fixture
def upload_files() -> dict:
    return {"file": ("prices.xlsx", SpreadsheetFactory.xlsx(price_list_rows()), XLSX_TYPE)}


def options(**values) -> dict:
    return {"options": json.dumps({"mapping": MAPPING, **values})}


class TestTenantContext:

    def test_missing_tenant_header(self, test_client, upload_files):
        response = test_client.post("/api/import/preview", files=upload_files)

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TENANT_REQUIRED"


class TestPreviewRoute:

    def test_preview(self, test_client, tenant_headers, upload_files):
        response = test_client.post(
            "/api/import/preview", files=upload_files, data={"sheet_index": "0"}, headers=tenant_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_rows"] == 3
        assert body["suggested_mapping"]["supplier"] == 2
        assert body["columns"][0] == {"index": 0, "header": "Product Name"}

    def test_missing_file(self, test_client, tenant_headers):
        response = test_client.post("/api/import/preview", data={"has_header": "true"}, headers=tenant_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EMPTY_UPLOAD"

    def test_unreadable_file(self, test_client, tenant_headers):
        files = {"file": ("prices.xlsx", b"garbage", XLSX_TYPE)}

        response = test_client.post("/api/import/preview", files=files, headers=tenant_headers)

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SPREADSHEET_PARSE_ERROR"


class TestValidateRoute:

    def test_valid_mapping(self, test_client, tenant_headers, upload_files):
        response = test_client.post(
            "/api/import/validate-mapping", files=upload_files, data=options(), headers=tenant_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["field_errors"] == []
        assert len(body["preview_rows"]) == 3
        assert body["stats"]["mapped_rows"] == 3

    def test_field_errors_are_400(self, test_client, tenant_headers, upload_files):
        data = {"options": json.dumps({"mapping": {"price": 3}})}

        response = test_client.post(
            "/api/import/validate-mapping", files=upload_files, data=data, headers=tenant_headers
        )

        assert response.status_code == 400
        assert response.json()["field_errors"]

    def test_invalid_options_json(self, test_client, tenant_headers, upload_files):
        response = test_client.post(
            "/api/import/validate-mapping",
            files=upload_files,
            data={"options": "{not json"},
            headers=tenant_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_IMPORT_OPTIONS"

    def test_manual_row_values_keyed_by_row(self, test_client, tenant_headers, upload_files):
        data = options(manual_row_values={"1": {"price": "7"}})

        response = test_client.post(
            "/api/import/validate-mapping", files=upload_files, data=data, headers=tenant_headers
        )

        assert response.json()["preview_rows"][0]["price"] == 7.0


class TestApplyRoute:

    def test_merge(self, test_client, tenant_headers, upload_files, fake_supabase):
        response = test_client.post(
            "/api/import/apply", files=upload_files, data=options(), headers=tenant_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["mode"] == "merge"
        assert body["stats"]["prices_inserted"] == 3
        assert len(fake_supabase.tables["price_entries"]) == 3

    def test_field_errors(self, test_client, tenant_headers, upload_files):
        data = {"options": json.dumps({"mapping": {"price": 3}})}

        response = test_client.post("/api/import/apply", files=upload_files, data=data, headers=tenant_headers)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "IMPORT_MAPPING_INVALID"
        assert error["details"]["field_errors"]

    def test_overwrite_requires_owner(self, test_client, tenant_headers, upload_files):
        data = {**options(), "mode": "overwrite", "confirmation": "DELETE"}

        response = test_client.post("/api/import/apply", files=upload_files, data=data, headers=tenant_headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "OVERWRITE_OWNER_ONLY"

    def test_overwrite_requires_confirmation(self, test_client, owner_headers, upload_files):
        data = {**options(), "mode": "overwrite"}

        response = test_client.post("/api/import/apply", files=upload_files, data=data, headers=owner_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "OVERWRITE_CONFIRMATION_REQUIRED"

    def test_overwrite(self, test_client, owner_headers, upload_files):
        data = {**options(), "mode": "overwrite", "confirmation": "DELETE"}

        response = test_client.post("/api/import/apply", files=upload_files, data=data, headers=owner_headers)

        assert response.status_code == 200
        assert response.json()["mode"] == "overwrite"

    def test_invalid_mode(self, test_client, tenant_headers, upload_files):
        data = {**options(), "mode": "replace"}

        response = test_client.post("/api/import/apply", files=upload_files, data=data, headers=tenant_headers)

        assert response.status_code == 422

    def test_batch_policy_form_field(self, test_client, tenant_headers, upload_files, fake_supabase):
        fake_supabase.fail_insert("price_entries", times=1)
        data = {**options(), "on_batch_failure": "abort"}

        response = test_client.post("/api/import/apply", files=upload_files, data=data, headers=tenant_headers)

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "IMPORT_BATCH_FAILED"


class TestMappingPresetRoutes:

    def test_crud(self, test_client, tenant_headers):
        saved = test_client.put(
            "/api/import/mappings/Tnuva",
            json={"mapping": {"product_name": 0, "price": 3}},
            headers=tenant_headers,
        )
        assert saved.status_code == 200
        assert saved.json()["name"] == "Tnuva"

        listed = test_client.get("/api/import/mappings", headers=tenant_headers)
        assert [preset["name"] for preset in listed.json()] == ["Tnuva"]

        deleted = test_client.delete("/api/import/mappings/Tnuva", headers=tenant_headers)
        assert deleted.status_code == 204

        missing = test_client.delete("/api/import/mappings/Tnuva", headers=tenant_headers)
        assert missing.status_code == 404


class TestSellPriceRoute:

    def test_uses_tenant_settings(self, test_client, tenant_headers, fake_supabase):
        fake_supabase.seed("settings", [{
            "tenant_id": TENANT_ID, "vat_percent": 18, "global_margin_percent": 30, "use_margin": True,
        }])

        response = test_client.post(
            "/api/pricing/sell-price", json={"cost_price": 100, "discount_percent": 10}, headers=tenant_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["cost_price_after_discount"] == 90.0
        assert body["sell_price"] == 117.0
        assert body["margin_percent"] == 30

    def test_margin_override(self, test_client, tenant_headers, fake_supabase):
        fake_supabase.seed("settings", [{"tenant_id": TENANT_ID, "global_margin_percent": 30, "use_margin": True}])

        response = test_client.post(
            "/api/pricing/sell-price", json={"cost_price": 100, "margin_percent": 50}, headers=tenant_headers
        )

        assert response.json()["sell_price"] == 150.0

    def test_margin_ignored_when_disabled(self, test_client, tenant_headers):
        response = test_client.post(
            "/api/pricing/sell-price", json={"cost_price": 100, "margin_percent": 50}, headers=tenant_headers
        )

        assert response.json()["sell_price"] == 100.0


class TestAppRoutes:

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"]["status"] == "healthy"

    def test_root_lists_endpoints(self, test_client):
        assert response_ok(test_client.get("/"))["endpoints"]["import"] == "/api/import"


def response_ok(response) -> dict:
    assert response.status_code == 200
    return response.json()
