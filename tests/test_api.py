"""
ZimPay Payroll - API Tests

HTTP behaviour of the payroll router: status codes, response bodies and
the error envelope.
"""

from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest

from app.models.enums import CurrencyMode
from app.services.payroll_service import PayrollPeriodService
from app.tasks import celery_tasks

API = "/api/v1/payroll"


def center_url(setup, action: str) -> str:
    return f"{API}/periods/{setup.period_id}/centers/{setup.center_id}/{action}"


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestPeriodEndpoints:

    @pytest.mark.asyncio
    async def test_run_period(self, client, payroll_setup):
        response = await client.post(center_url(payroll_setup, "run"), json={"currency_mode": "DEFAULT"})

        assert response.status_code == 200
        data = response.json()
        assert data["operation"] == "run"
        assert data["state"] == "Completed"
        assert data["employee_count"] == 2
        assert len(data["payslip_ids"]) == 2

    @pytest.mark.asyncio
    async def test_second_run_conflicts(self, client, payroll_setup):
        await client.post(center_url(payroll_setup, "run"), json={})

        response = await client.post(center_url(payroll_setup, "run"), json={})

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "INVALID_STATE"

    @pytest.mark.asyncio
    async def test_unknown_period_not_found(self, client, payroll_setup):
        url = f"{API}/periods/{payroll_setup.center_id}/centers/{payroll_setup.center_id}/run"

        response = await client.post(url, json={})

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "PERIOD_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_status_after_run(self, client, payroll_setup):
        await client.post(center_url(payroll_setup, "run"), json={"currency_mode": "USD"})

        response = await client.get(center_url(payroll_setup, "status"))

        data = response.json()
        assert response.status_code == 200
        assert data["center_code"] == "C001"
        assert data["period_currency"] == "USD"
        assert data["employee_count"] == 2
        assert data["can_be_refreshed"] is True
        assert data["can_be_run"] is False

    @pytest.mark.asyncio
    async def test_close_then_refresh_rejected(self, client, payroll_setup):
        await client.post(center_url(payroll_setup, "run"), json={})

        closed = await client.post(center_url(payroll_setup, "close"))
        refresh = await client.post(center_url(payroll_setup, "refresh"), json={})

        assert closed.status_code == 200
        assert closed.json()["state"] == "Closed"
        assert refresh.status_code == 409
        assert refresh.json()["detail"]["code"] == "PERIOD_CLOSED"

    @pytest.mark.asyncio
    async def test_update_currency(self, client, payroll_setup):
        response = await client.put(center_url(payroll_setup, "currency"), json={"currency_mode": "ZWG"})

        assert response.status_code == 200
        assert response.json()["period_currency"] == "ZWG"

    @pytest.mark.asyncio
    async def test_update_currency_requires_mode(self, client, payroll_setup):
        response = await client.put(center_url(payroll_setup, "currency"), json={})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_run_without_mode_uses_stored_currency(self, client, payroll_setup):
        await client.put(center_url(payroll_setup, "currency"), json={"currency_mode": "USD"})

        run = await client.post(center_url(payroll_setup, "run"), json={})
        status = await client.get(center_url(payroll_setup, "status"))

        assert run.status_code == 200
        assert run.json()["currency_mode"] == "USD"
        assert status.json()["period_currency"] == "USD"

    @pytest.mark.asyncio
    async def test_run_without_body_uses_stored_currency(self, client, payroll_setup):
        await client.put(center_url(payroll_setup, "currency"), json={"currency_mode": "USD"})

        run = await client.post(center_url(payroll_setup, "run"))

        assert run.status_code == 200
        assert run.json()["currency_mode"] == "USD"

    @pytest.mark.asyncio
    async def test_period_summary(self, client, payroll_setup):
        period_id = payroll_setup.period_id
        await client.post(center_url(payroll_setup, "run"), json={})
        await client.post(center_url(payroll_setup, "close"))

        response = await client.get(f"{API}/periods/{period_id}/status")

        data = response.json()
        assert response.status_code == 200
        assert data["completion_percentage"] == "100.00"
        assert [c["center_code"] for c in data["centers"]] == ["C001"]
        assert data["active_operations"] == []

    @pytest.mark.asyncio
    async def test_generate_periods(self, client, payroll_setup):
        response = await client.post(
            f"{API}/payrolls/{payroll_setup.payroll_id}/periods/generate", json={"year": 2025},
        )

        assert response.status_code == 200
        assert len(response.json()) == 12

    @pytest.mark.asyncio
    async def test_run_async_queues_task(self, client, payroll_setup, monkeypatch):
        calls = []

        def fake_delay(*args):
            calls.append(args)
            return SimpleNamespace(id="task-123")

        monkeypatch.setattr(celery_tasks.process_payroll_period_task, "delay", fake_delay)

        response = await client.post(
            center_url(payroll_setup, "run-async"), json={"action": "refresh", "currency_mode": "USD"},
        )

        assert response.status_code == 202
        assert response.json()["task_id"] == "task-123"
        assert calls == [(str(payroll_setup.period_id), str(payroll_setup.center_id), "refresh", "USD")]


class TestBackgroundTasks:

    @pytest.mark.asyncio
    async def test_background_run_keeps_stored_currency(self, db_session, payroll_setup, monkeypatch):
        @asynccontextmanager
        async def test_session():
            yield db_session

        monkeypatch.setattr(celery_tasks, "worker_session", test_session)
        await PayrollPeriodService(db_session).update_currency(
            payroll_setup.period_id, payroll_setup.center_id, CurrencyMode.USD,
        )

        result = await celery_tasks._process_payroll_period(
            payroll_setup.period_id, payroll_setup.center_id, "run", None,
        )

        assert result["currency_mode"] == "USD"
        assert result["employee_count"] == 2


class TestPayslipEndpoints:

    @pytest.mark.asyncio
    async def test_list_and_distribute(self, client, payroll_setup):
        await client.post(center_url(payroll_setup, "run"), json={})

        listed = await client.get(center_url(payroll_setup, "payslips"), params={"status": "finalized"})
        payslip_id = listed.json()["payslips"][0]["id"]
        distributed = await client.post(f"{API}/payslips/{payslip_id}/distribute")
        again = await client.post(f"{API}/payslips/{payslip_id}/distribute")

        assert listed.json()["total"] == 2
        assert distributed.status_code == 200
        assert distributed.json()["status"] == "distributed"
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_preview(self, client, payroll_setup):
        url = f"{API}/employees/{payroll_setup.employee_ids[0]}/periods/{payroll_setup.period_id}/preview"

        response = await client.get(url, params={"currency_mode": "USD"})

        data = response.json()
        assert response.status_code == 200
        assert data["id"] is None
        assert data["net_usd"] == "740.00"


class TestConfigurationEndpoints:

    @pytest.mark.asyncio
    async def test_create_split(self, client, payroll_setup):
        response = await client.post(f"{API}/config/currency-splits", json={
            "center_id": str(payroll_setup.center_id),
            "zwg_percentage": "40",
            "usd_percentage": "60",
            "effective_date": "2025-02-01",
        })

        assert response.status_code == 201
        assert response.json()["is_active"] is True

    @pytest.mark.asyncio
    async def test_bad_split_rejected(self, client, payroll_setup):
        response = await client.post(f"{API}/config/currency-splits", json={
            "center_id": str(payroll_setup.center_id),
            "zwg_percentage": "60",
            "usd_percentage": "50",
            "effective_date": "2025-02-01",
        })

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_SPLIT"

    @pytest.mark.asyncio
    async def test_create_exchange_rate(self, client):
        response = await client.post(f"{API}/config/exchange-rates", json={
            "from_currency": "ZWG",
            "to_currency": "USD",
            "rate": "0.04",
            "effective_date": "2025-01-01",
        })

        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_replace_tax_bands_with_gap(self, client):
        response = await client.put(f"{API}/config/tax-bands", json={
            "currency": "ZWG",
            "bands": [
                {"min_salary": "0", "max_salary": "1000", "tax_rate": "0"},
                {"min_salary": "2000", "tax_rate": "0.2"},
            ],
        })

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_TAX_BANDS"

    @pytest.mark.asyncio
    async def test_create_vehicle_band(self, client):
        response = await client.post(f"{API}/config/vehicle-benefit-bands", json={
            "engine_capacity_min": 0,
            "engine_capacity_max": 1500,
            "benefit_amount": "30",
            "currency": "USD",
        })

        assert response.status_code == 201
        assert response.json()["engine_capacity_max"] == 1500


class TestReadiness:

    @pytest.mark.asyncio
    async def test_ready_when_database_answers(self, client):
        response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready"}
